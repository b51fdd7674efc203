import os
import logging
from pathlib import Path
from utils.config_utils import load_dynamic_config

# === Path Settings ===
BASE_DIR = Path(__file__).parent.absolute()
DATA_DIR = Path(os.getenv("DATA_DIR", BASE_DIR / "data"))
STORAGE_DIR = DATA_DIR / "face-images"

# Create essential directories
DATA_DIR.mkdir(parents=True, exist_ok=True)
STORAGE_DIR.mkdir(exist_ok=True)

# === Upload Validation Bounds ===
MAX_FILE_SIZE = 5 * 1024 * 1024   # 5MB
MIN_FILE_SIZE = 1000              # bytes
MIN_DIMENSION = 100               # pixels, per axis
MAX_DIMENSION = 4000              # pixels, per axis

# Cumulative cap on stored enrollment photos (not a rolling 24h window)
MAX_UPLOADS_PER_DAY = 20

# === Attendance Capture ===
CAPTURE_JPEG_QUALITY = 85
ATTENDANCE_URL_TTL_SECONDS = 3600          # 1 hour
ENROLLMENT_URL_TTL_SECONDS = 31536000      # 1 year

# === Face Detector (black box) ===
FACE_MODEL_NAME = os.getenv("FACE_MODEL_NAME", "buffalo_l")
FACE_DEVICE = os.getenv("FACE_DEVICE", "cpu")
FACE_DET_SIZE = (640, 640)
DESCRIPTOR_LENGTH = 512

# === API & Network Settings ===
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", f"http://localhost:{API_PORT}")

# === SQL Server Settings ===
MSSQL_HOST = os.getenv("MSSQL_HOST", "localhost")
MSSQL_PORT = int(os.getenv("MSSQL_PORT", "1433"))
MSSQL_USER = os.getenv("MSSQL_USER", "sa")
MSSQL_PASSWORD = os.getenv("MSSQL_PASSWORD", "YourStrong@Passw0rd")
MSSQL_DATABASE = os.getenv("MSSQL_DATABASE", "FaceAttendanceDB")

# Full SQLAlchemy URL; overrides the SQL Server parts above when set
DATABASE_URL = os.getenv("DATABASE_URL")

# === Authentication ===
JWT_SECRET = os.getenv("JWT_SECRET", "change-me-in-production")
JWT_ALGORITHM = "HS256"
ACCESS_TOKEN_TTL_MINUTES = int(os.getenv("ACCESS_TOKEN_TTL_MINUTES", "720"))

# === Object Storage ===
STORAGE_SIGNING_SECRET = os.getenv("STORAGE_SIGNING_SECRET", JWT_SECRET)

# === Notifications (Resend email API) ===
RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
RESEND_API_URL = "https://api.resend.com/emails"
EMAIL_SENDER = os.getenv("EMAIL_SENDER", "FacePresence <onboarding@resend.dev>")
NOTIFICATION_HTTP_TIMEOUT = 10

# === Logging ===
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "text")

# === Runtime-tunable Settings ===
_dynamic_config = load_dynamic_config(DATA_DIR / "config.json")
STAGE_TIMEOUT_SECONDS = float(_dynamic_config.get("STAGE_TIMEOUT_SECONDS", 10.0))
NOTIFICATIONS_ENABLED = bool(_dynamic_config.get("NOTIFICATIONS_ENABLED", True))


def setup_logging() -> None:
    """Configure root logging from LOG_LEVEL / LOG_FORMAT."""
    level = getattr(logging, LOG_LEVEL.upper(), logging.INFO)

    if LOG_FORMAT == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
