import asyncio
from urllib.parse import parse_qs, urlparse, unquote

import pytest

from services.object_storage import LocalObjectStorage, StorageError


@pytest.fixture
def local_storage(tmp_path):
    return LocalObjectStorage(root_dir=tmp_path, signing_secret="s3cret", base_url="http://test/api/v1/storage")


def split_url(url):
    parsed = urlparse(url)
    query = parse_qs(parsed.query)
    path = unquote(parsed.path[len("/api/v1/storage/"):])
    return path, int(query["expires"][0]), query["signature"][0]


class TestPut:

    def test_put_writes_under_principal(self, local_storage, tmp_path):
        asyncio.run(local_storage.put("user-a/1.jpg", b"\xFF\xD8data", "image/jpeg"))
        assert (tmp_path / "user-a" / "1.jpg").read_bytes() == b"\xFF\xD8data"

    @pytest.mark.parametrize("path", [
        "1.jpg",
        "/user-a/1.jpg",
        "../user-a/1.jpg",
        "user-a/../user-b/1.jpg",
        "user-a/./1.jpg",
        "user-a//1.jpg",
        "user-a/",
    ])
    def test_bad_paths_rejected(self, local_storage, path):
        with pytest.raises(StorageError):
            asyncio.run(local_storage.put(path, b"x", "image/jpeg"))

    def test_content_type_must_match_suffix(self, local_storage):
        with pytest.raises(StorageError):
            asyncio.run(local_storage.put("user-a/1.jpg", b"x", "image/png"))
        with pytest.raises(StorageError):
            asyncio.run(local_storage.put("user-a/1.exe", b"x", "application/octet-stream"))

    def test_no_overwrite(self, local_storage):
        asyncio.run(local_storage.put("user-a/1.jpg", b"one", "image/jpeg"))
        with pytest.raises(StorageError):
            asyncio.run(local_storage.put("user-a/1.jpg", b"two", "image/jpeg"))

    def test_dot_segments_do_not_alias(self, local_storage):
        asyncio.run(local_storage.put("user-a/1.jpg", b"x", "image/jpeg"))
        with pytest.raises(StorageError):
            asyncio.run(local_storage.create_time_limited_url("user-a/./1.jpg", 60))
        assert local_storage.open_path("user-a//1.jpg") is None


class TestSignedUrls:

    def test_url_round_trip(self, local_storage):
        asyncio.run(local_storage.put("user-a/1.jpg", b"x", "image/jpeg"))
        url = asyncio.run(local_storage.create_time_limited_url("user-a/1.jpg", 3600))

        assert url.startswith("http://test/api/v1/storage/user-a/1.jpg?")
        path, expires, signature = split_url(url)
        assert path == "user-a/1.jpg"
        assert local_storage.verify(path, expires, signature)

    def test_missing_object_has_no_url(self, local_storage):
        with pytest.raises(StorageError):
            asyncio.run(local_storage.create_time_limited_url("user-a/missing.jpg", 60))

    def test_expired_url_rejected(self, local_storage):
        asyncio.run(local_storage.put("user-a/1.jpg", b"x", "image/jpeg"))
        url = asyncio.run(local_storage.create_time_limited_url("user-a/1.jpg", 60))
        path, expires, signature = split_url(url)

        assert not local_storage.verify(path, expires, signature, now=expires + 1)

    def test_signature_bound_to_path_and_expiry(self, local_storage):
        asyncio.run(local_storage.put("user-a/1.jpg", b"x", "image/jpeg"))
        url = asyncio.run(local_storage.create_time_limited_url("user-a/1.jpg", 60))
        path, expires, signature = split_url(url)

        assert not local_storage.verify("user-b/1.jpg", expires, signature)
        assert not local_storage.verify(path, expires + 1000, signature)
        assert not local_storage.verify(path, expires, "0" * 64)

    def test_open_path(self, local_storage):
        asyncio.run(local_storage.put("user-a/1.jpg", b"x", "image/jpeg"))
        assert local_storage.open_path("user-a/1.jpg").name == "1.jpg"
        assert local_storage.open_path("user-a/2.jpg") is None
        assert local_storage.open_path("../etc/passwd") is None
