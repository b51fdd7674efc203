import re
import base64
import binascii
from typing import Tuple, Optional
import numpy as np
import cv2

from models.errors import MalformedInputError

DATA_URI_PATTERN = re.compile(r"^data:image/([a-z]+);base64,(.+)$")


def parse_image_data_uri(data_uri: str) -> Tuple[str, bytes]:
    """
    Split a `data:image/<subtype>;base64,<data>` URI into its parts.

    The declared subtype is advisory only and is never used to decide the format.

    Returns:
        (declared_subtype, decoded_bytes)

    Raises:
        MalformedInputError: If the envelope or the base64 payload is invalid
    """
    if not isinstance(data_uri, str):
        raise MalformedInputError("Invalid image data format")

    match = DATA_URI_PATTERN.match(data_uri)
    if not match:
        raise MalformedInputError("Invalid image data format")

    declared_type, payload = match.groups()
    try:
        image_bytes = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise MalformedInputError("Invalid image data encoding")

    return declared_type, image_bytes


def to_data_uri(image_bytes: bytes, subtype: str = "jpeg") -> str:
    """Wrap raw bytes into a base64 image data URI"""
    encoded = base64.b64encode(image_bytes).decode("ascii")
    return f"data:image/{subtype};base64,{encoded}"


def load_image_from_bytes(image_bytes: bytes) -> Optional[np.ndarray]:
    """
    Load image from bytes to numpy array (BGR format for OpenCV)

    Returns None if OpenCV cannot decode the bytes.
    """
    nparr = np.frombuffer(image_bytes, np.uint8)
    return cv2.imdecode(nparr, cv2.IMREAD_COLOR)


def encode_frame_jpeg(frame: np.ndarray, quality: int = 85) -> bytes:
    """
    Encode a BGR frame as JPEG bytes.

    Raises:
        ValueError: If the frame is empty or OpenCV fails to encode it
    """
    if frame is None or frame.size == 0:
        raise ValueError("Empty frame")

    ok, encoded = cv2.imencode('.jpg', frame, [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not ok:
        raise ValueError("JPEG encoding failed")
    return encoded.tobytes()
