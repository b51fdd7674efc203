import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Settings that can be changed at runtime through /config
DEFAULT_CONFIG = {
    "STAGE_TIMEOUT_SECONDS": 10.0,
    "NOTIFICATIONS_ENABLED": True
}

# Set by the first load_dynamic_config(path) call (config.py does this)
DYNAMIC_CONFIG_PATH: Optional[Path] = None


def load_dynamic_config(path: Path = None) -> Dict[str, Any]:
    """
    Load runtime settings from the JSON file, creating it with defaults if
    missing. Unknown files or unreadable JSON fall back to the defaults.
    """
    global DYNAMIC_CONFIG_PATH
    if path is not None:
        DYNAMIC_CONFIG_PATH = Path(path)
    if DYNAMIC_CONFIG_PATH is None:
        return dict(DEFAULT_CONFIG)

    if not DYNAMIC_CONFIG_PATH.exists():
        save_dynamic_config(DEFAULT_CONFIG)
        return dict(DEFAULT_CONFIG)

    try:
        data = json.loads(DYNAMIC_CONFIG_PATH.read_text())
    except (OSError, ValueError) as e:
        logger.warning(f"Error loading dynamic config, using defaults: {e}")
        return dict(DEFAULT_CONFIG)

    missing = {k: v for k, v in DEFAULT_CONFIG.items() if k not in data}
    if missing:
        data.update(missing)
        save_dynamic_config(data)
    return data


def save_dynamic_config(config_data: Dict[str, Any]) -> bool:
    """Write runtime settings; False if there is no path or the write fails."""
    if DYNAMIC_CONFIG_PATH is None:
        return False

    try:
        DYNAMIC_CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
        DYNAMIC_CONFIG_PATH.write_text(json.dumps(config_data, indent=4))
    except OSError as e:
        logger.error(f"Error saving dynamic config: {e}")
        return False
    return True


def update_config_values(updates: Dict[str, Any]) -> bool:
    """Merge several settings into the file in one write."""
    data = load_dynamic_config()
    data.update(updates)
    return save_dynamic_config(data)
