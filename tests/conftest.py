import os
import struct
import tempfile
from pathlib import Path

# Must be set before config is imported anywhere
_TEST_DATA_DIR = Path(tempfile.mkdtemp(prefix="face-attendance-tests-"))
os.environ.setdefault("DATA_DIR", str(_TEST_DATA_DIR))
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DATA_DIR / 'test.db'}")
os.environ.setdefault("JWT_SECRET", "face-attendance-test-signing-secret-0123456789")
os.environ["RESEND_API_KEY"] = ""

import base64
import io

import numpy as np
import pytest
from PIL import Image


# ==================== Image builders ====================

def build_jpeg(width: int, height: int, total_size: int = 1200, with_dht: bool = False) -> bytes:
    """Minimal JPEG header: SOI, APP0, optional DHT, SOF0, zero padding, EOI"""
    data = b"\xFF\xD8"
    data += b"\xFF\xE0" + struct.pack(">H", 16) + b"JFIF\x00" + b"\x01\x01\x00\x00\x01\x00\x01\x00\x00"
    if with_dht:
        data += b"\xFF\xC4" + struct.pack(">H", 5) + b"\x00\x00\x00"
    data += b"\xFF\xC0" + struct.pack(">HBHHB", 17, 8, height, width, 3)
    data += b"\x01\x22\x00\x02\x11\x01\x03\x11\x01"
    padding = max(0, total_size - len(data) - 2)
    return data + b"\x00" * padding + b"\xFF\xD9"


def build_jpeg_without_sof(total_size: int = 1200) -> bytes:
    data = b"\xFF\xD8"
    data += b"\xFF\xE0" + struct.pack(">H", 16) + b"JFIF\x00" + b"\x01\x01\x00\x00\x01\x00\x01\x00\x00"
    return data + b"\x00" * (total_size - len(data))


def build_png(width: int, height: int, total_size: int = 1200) -> bytes:
    """PNG signature followed by an IHDR chunk, padded"""
    data = b"\x89PNG\r\n\x1a\n"
    data += struct.pack(">I", 13) + b"IHDR" + struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    data += b"\x00\x00\x00\x00"  # CRC (not checked)
    return data + b"\x00" * max(0, total_size - len(data))


def build_webp(total_size: int = 1200) -> bytes:
    data = b"RIFF" + struct.pack("<I", total_size - 8) + b"WEBPVP8 "
    return data + b"\x00" * (total_size - len(data))


def real_jpeg(width: int = 200, height: int = 200) -> bytes:
    """Decodable JPEG with some texture so it stays above the minimum size"""
    rng = np.random.default_rng(0)
    pixels = rng.integers(0, 255, size=(height, width, 3), dtype=np.uint8)
    buffer = io.BytesIO()
    Image.fromarray(pixels).save(buffer, format="JPEG", quality=90)
    return buffer.getvalue()


def data_uri(image_bytes: bytes, subtype: str = "jpeg") -> str:
    return f"data:image/{subtype};base64,{base64.b64encode(image_bytes).decode()}"


@pytest.fixture
def images():
    """Namespace of image builders"""
    class _Images:
        jpeg = staticmethod(build_jpeg)
        jpeg_without_sof = staticmethod(build_jpeg_without_sof)
        png = staticmethod(build_png)
        webp = staticmethod(build_webp)
        real_jpeg = staticmethod(real_jpeg)
        data_uri = staticmethod(data_uri)
    return _Images


# ==================== Fake collaborators ====================

class FakeProfile:
    def __init__(self, principal, email="student@example.com", full_name="Test Student", roll_number="R-001"):
        self.id = principal
        self.email = email
        self.full_name = full_name
        self.roll_number = roll_number
        self.face_photos = []


class FakeProfileStore:
    def __init__(self, stored_count=0):
        self.stored_count = stored_count
        self.fail_reads = False
        self.count_calls = 0
        self.appended = []
        self.profiles = {}

    async def get_stored_photo_count(self, principal):
        self.count_calls += 1
        if self.fail_reads:
            from services.profile_store import ProfileStoreError
            raise ProfileStoreError("database unavailable")
        return self.stored_count

    async def append_photo_reference(self, principal, url):
        self.appended.append((principal, url))
        self.stored_count += 1
        return self.stored_count

    async def get_profile(self, principal):
        return self.profiles.get(principal)


class SpyValidator:
    """Wraps the real validator and counts calls"""
    def __init__(self):
        from models.image_validator import ImageFormatValidator
        self._validator = ImageFormatValidator()
        self.calls = 0

    def validate(self, data):
        self.calls += 1
        return self._validator.validate(data)


class FakeDetector:
    def __init__(self, face=True):
        from models.face_detector import DetectedFace
        self.face = DetectedFace(descriptor=[0.1] * 512, confidence=0.97) if face else None
        self.calls = 0
        self.available = True

    def detect(self, frame):
        self.calls += 1
        return self.face


class FakeStorage:
    def __init__(self):
        self.fail_put = False
        self.put_calls = []
        self.url_calls = []

    async def put(self, path, data, content_type):
        self.put_calls.append((path, len(data), content_type))
        if self.fail_put:
            from services.object_storage import StorageError
            raise StorageError("bucket unavailable")
        return path

    async def create_time_limited_url(self, path, ttl_seconds):
        self.url_calls.append((path, ttl_seconds))
        return f"https://storage.test/{path}?ttl={ttl_seconds}"


class FakeRecordStore:
    def __init__(self):
        self.fail_insert = False
        self.events = []

    async def insert(self, event):
        self.events.append(event)
        if self.fail_insert:
            from services.record_store import RecordStoreError
            raise RecordStoreError("insert failed")
        return f"record-{len(self.events)}"


class FakeNotifier:
    def __init__(self):
        self.fail = False
        self.sent = []

    async def send(self, address, template_data):
        self.sent.append((address, template_data))
        if self.fail:
            from services.notification import NotificationError
            raise NotificationError("smtp down")
        return {"id": "msg-1"}


@pytest.fixture
def profile_store():
    return FakeProfileStore()


@pytest.fixture
def spy_validator():
    return SpyValidator()


@pytest.fixture
def detector():
    return FakeDetector()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def record_store():
    return FakeRecordStore()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def ingestion(profile_store, spy_validator):
    from services.ingestion import IngestionService
    return IngestionService(profile_store=profile_store, validator=spy_validator, read_timeout=1.0)


@pytest.fixture
def orchestrator(ingestion, detector, storage, record_store, profile_store, notifier):
    from services.attendance_submission import AttendanceSubmissionOrchestrator
    profile_store.profiles["user-a"] = FakeProfile("user-a")
    return AttendanceSubmissionOrchestrator(
        ingestion=ingestion,
        detector=detector,
        storage=storage,
        record_store=record_store,
        profile_store=profile_store,
        notifier=notifier,
        stage_timeout=1.0,
        notifications_enabled=True
    )


@pytest.fixture
def frame():
    """BGR frame large enough to pass the dimension bounds once encoded"""
    rng = np.random.default_rng(1)
    return rng.integers(0, 255, size=(240, 320, 3), dtype=np.uint8)
