"""
Image Format Validator Module

Decides whether an uploaded payload is a genuine, size- and dimension-bounded
image before anything downstream trusts it. Only the bytes are inspected;
the client's declared content type plays no part in the decision.

Checks, in order: byte size, magic bytes, header dimensions.
No full decode is performed.
"""

import logging
import struct
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from config import MAX_FILE_SIZE, MIN_FILE_SIZE, MIN_DIMENSION, MAX_DIMENSION
from models.errors import RejectionReason, ValidationRejection

logger = logging.getLogger(__name__)


class DetectedFormat(str, Enum):
    """Image format derived from byte-pattern inspection"""
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"


# Leading signatures; mutually non-overlapping so order only decides ties that cannot occur
MAGIC_BYTES = (
    (DetectedFormat.JPEG, b"\xff\xd8\xff"),
    (DetectedFormat.PNG, b"\x89PNG"),
    (DetectedFormat.WEBP, b"RIFF"),
)

# Start-Of-Frame markers. 0xC4 (DHT), 0xC8 (JPG) and 0xCC (DAC) share the range but carry no frame header.
SOF_MARKERS = frozenset(range(0xC0, 0xD0)) - {0xC4, 0xC8, 0xCC}

PNG_IHDR_END = 24


@dataclass(frozen=True)
class ImageDimensions:
    """Pixel dimensions read from format headers"""
    width: int
    height: int


@dataclass(frozen=True)
class ValidationResult:
    """Result of validating one upload. Returned once, never persisted."""
    valid: bool
    size: int
    format: Optional[DetectedFormat] = None
    dimensions: Optional[ImageDimensions] = None
    error_reason: Optional[str] = None
    rejection: Optional[RejectionReason] = None
    bound: Optional[int] = None

    def to_error(self) -> ValidationRejection:
        """Convert a rejected result into the matching exception"""
        if self.valid:
            raise ValueError("Accepted result has no rejection")
        return ValidationRejection(self.error_reason, self.rejection, self.bound)

    def to_dict(self) -> Dict:
        data = {
            'valid': self.valid,
            'size': self.size,
            'format': self.format.value if self.format else None,
        }
        if self.dimensions is not None:
            data['width'] = self.dimensions.width
            data['height'] = self.dimensions.height
        if not self.valid:
            data['error'] = self.error_reason
            data['reason'] = self.rejection.value if self.rejection else None
            data['bound'] = self.bound
        return data


def detect_format(data: bytes) -> Optional[DetectedFormat]:
    """Match the leading bytes against known signatures"""
    for image_format, magic in MAGIC_BYTES:
        if data.startswith(magic):
            return image_format
    return None


def read_jpeg_dimensions(data: bytes) -> Optional[ImageDimensions]:
    """
    Walk JPEG marker segments until the first Start-Of-Frame.

    Each segment is 0xFF, a marker byte, then a big-endian 16-bit length that
    counts itself. An SOF segment body is: length(2) precision(1) height(2) width(2).

    Returns:
        ImageDimensions, or None if no SOF is found before the data runs out
        or a segment header is malformed.
    """
    offset = 2  # Skip SOI marker
    total = len(data)

    while offset + 1 < total:
        if data[offset] != 0xFF:
            break

        marker = data[offset + 1]
        offset += 2

        if marker in SOF_MARKERS:
            if offset + 7 > total:
                return None
            height, width = struct.unpack_from(">HH", data, offset + 3)
            return ImageDimensions(width=width, height=height)

        if offset + 2 > total:
            break
        (segment_length,) = struct.unpack_from(">H", data, offset)
        if segment_length < 2:
            break
        offset += segment_length

    return None


def read_png_dimensions(data: bytes) -> Optional[ImageDimensions]:
    """IHDR always follows the 8-byte signature: width at 16, height at 20"""
    if len(data) < PNG_IHDR_END:
        return None
    width, height = struct.unpack_from(">II", data, 16)
    return ImageDimensions(width=width, height=height)


class ImageFormatValidator:
    """
    Validator for untrusted image uploads.

    `validate` never raises: every rejection comes back as a
    ValidationResult with a specific reason naming the violated bound.
    """

    def __init__(
        self,
        max_file_size: int = None,
        min_file_size: int = None,
        min_dimension: int = None,
        max_dimension: int = None
    ):
        self.max_file_size = max_file_size or MAX_FILE_SIZE
        self.min_file_size = min_file_size or MIN_FILE_SIZE
        self.min_dimension = min_dimension or MIN_DIMENSION
        self.max_dimension = max_dimension or MAX_DIMENSION

    def validate(self, data: bytes) -> ValidationResult:
        """
        Validate raw image bytes.

        Args:
            data: Decoded upload payload

        Returns:
            ValidationResult (valid or rejected)
        """
        size = len(data)

        # 1. Size gate, independent of format
        if size > self.max_file_size:
            return self._reject(
                size,
                RejectionReason.FILE_TOO_LARGE,
                f"File too large. Maximum size: {self.max_file_size // (1024 * 1024)}MB",
                self.max_file_size
            )
        if size < self.min_file_size:
            return self._reject(
                size,
                RejectionReason.FILE_TOO_SMALL,
                f"File too small. Minimum size: {self.min_file_size // 1000}KB",
                self.min_file_size
            )

        # 2. Magic-byte sniff
        image_format = detect_format(data)
        if image_format is None:
            return self._reject(
                size,
                RejectionReason.INVALID_FORMAT,
                "Invalid image format. Only JPEG, PNG, and WebP are allowed."
            )

        # 3. Dimension extraction
        if image_format == DetectedFormat.JPEG:
            dimensions = read_jpeg_dimensions(data)
        elif image_format == DetectedFormat.PNG:
            dimensions = read_png_dimensions(data)
        else:
            dimensions = None

        if dimensions is None:
            logger.warning(f"Dimension check skipped for {image_format.value} upload ({size} bytes)")
        else:
            # 4. Dimension gate
            if dimensions.width < self.min_dimension or dimensions.height < self.min_dimension:
                return self._reject(
                    size,
                    RejectionReason.DIMENSIONS_TOO_SMALL,
                    f"Image too small. Minimum dimensions: {self.min_dimension}x{self.min_dimension}",
                    self.min_dimension,
                    image_format,
                    dimensions
                )
            if dimensions.width > self.max_dimension or dimensions.height > self.max_dimension:
                return self._reject(
                    size,
                    RejectionReason.DIMENSIONS_TOO_LARGE,
                    f"Image too large. Maximum dimensions: {self.max_dimension}x{self.max_dimension}",
                    self.max_dimension,
                    image_format,
                    dimensions
                )

        logger.info(f"Image validated: {image_format.value}, {size} bytes")
        return ValidationResult(
            valid=True,
            size=size,
            format=image_format,
            dimensions=dimensions
        )

    @staticmethod
    def _reject(
        size: int,
        reason: RejectionReason,
        message: str,
        bound: int = None,
        image_format: DetectedFormat = None,
        dimensions: ImageDimensions = None
    ) -> ValidationResult:
        logger.info(f"Image rejected ({reason.value}): {message}")
        return ValidationResult(
            valid=False,
            size=size,
            format=image_format,
            dimensions=dimensions,
            error_reason=message,
            rejection=reason,
            bound=bound
        )


# Singleton instance for reuse
_validator_instance: Optional[ImageFormatValidator] = None


def get_image_validator() -> ImageFormatValidator:
    """
    Get singleton instance of ImageFormatValidator
    """
    global _validator_instance
    if _validator_instance is None:
        _validator_instance = ImageFormatValidator()
    return _validator_instance
