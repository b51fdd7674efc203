import numpy as np
import pytest

from models.errors import MalformedInputError
from utils.image_utils import encode_frame_jpeg, load_image_from_bytes, parse_image_data_uri, to_data_uri


class TestDataUri:

    def test_parse(self):
        subtype, data = parse_image_data_uri(to_data_uri(b"\xFF\xD8\xFFabc", "jpeg"))
        assert subtype == "jpeg"
        assert data == b"\xFF\xD8\xFFabc"

    @pytest.mark.parametrize("value", [None, 42, "data:image/JPEG;base64,AAAA", "data:image/png;base64,"])
    def test_bad_envelope(self, value):
        with pytest.raises(MalformedInputError) as exc_info:
            parse_image_data_uri(value)
        assert exc_info.value.message == "Invalid image data format"

    def test_bad_base64(self):
        with pytest.raises(MalformedInputError) as exc_info:
            parse_image_data_uri("data:image/png;base64,AAA*")
        assert exc_info.value.message == "Invalid image data encoding"


class TestFrameEncoding:

    def test_encode_and_decode(self):
        frame = np.full((120, 160, 3), 128, dtype=np.uint8)
        encoded = encode_frame_jpeg(frame, quality=85)
        assert encoded[:3] == b"\xFF\xD8\xFF"
        assert load_image_from_bytes(encoded).shape == (120, 160, 3)

    def test_empty_frame(self):
        with pytest.raises(ValueError):
            encode_frame_jpeg(np.zeros((0, 0, 3), dtype=np.uint8))

    def test_undecodable_bytes(self):
        assert load_image_from_bytes(b"not an image") is None
