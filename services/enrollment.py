"""
Enrollment Service

Uploads one enrollment face photo for a principal: admit through the
ingestion service, store it, sign a long-lived URL and append the URL to the
profile. Each successful enrollment counts toward the upload cap.
"""

import asyncio
import logging
import time
from typing import Dict, Optional

import config
from models.errors import UpstreamFailure
from utils.image_utils import parse_image_data_uri

logger = logging.getLogger(__name__)

UPLOADING_STAGE = "uploading"
PERSISTING_STAGE = "persisting"


class EnrollmentService:
    """Enrollment photo upload flow"""

    def __init__(
        self,
        ingestion=None,
        storage=None,
        profile_store=None,
        url_ttl_seconds: int = None,
        stage_timeout: float = None
    ):
        if ingestion is None:
            from services.ingestion import get_ingestion_service
            ingestion = get_ingestion_service()
        if storage is None:
            from services.object_storage import get_object_storage
            storage = get_object_storage()
        if profile_store is None:
            from services.profile_store import get_profile_store
            profile_store = get_profile_store()

        self.ingestion = ingestion
        self.storage = storage
        self.profile_store = profile_store
        self.url_ttl_seconds = url_ttl_seconds or config.ENROLLMENT_URL_TTL_SECONDS
        self._stage_timeout = stage_timeout

    async def _bounded(self, awaitable):
        timeout = self._stage_timeout if self._stage_timeout is not None else config.STAGE_TIMEOUT_SECONDS
        return await asyncio.wait_for(awaitable, timeout=timeout)

    async def enroll_photo(self, principal: str, claimed_owner_id: str, image_data_uri: str) -> Dict:
        """
        Admit and store one enrollment photo.

        Returns:
            Dict with path, url, stored photo count and the validation verdict

        Raises:
            AttendanceError subclasses from admission (authorization, quota,
            malformed input, validation rejection) or UpstreamFailure from
            storage / profile writes
        """
        result = await self.ingestion.admit(principal, claimed_owner_id, image_data_uri)
        if not result.valid:
            raise result.to_error()

        _, image_bytes = parse_image_data_uri(image_data_uri)
        content_type = f"image/{result.format.value}"
        suffix = "jpg" if result.format.value == "jpeg" else result.format.value
        path = f"{principal}/{principal}_face_{int(time.time() * 1000)}.{suffix}"

        try:
            await self._bounded(self.storage.put(path, image_bytes, content_type))
            url = await self._bounded(self.storage.create_time_limited_url(path, self.url_ttl_seconds))
        except asyncio.TimeoutError:
            raise UpstreamFailure("Photo upload timed out", UPLOADING_STAGE)
        except Exception as e:
            logger.error(f"Enrollment upload failed for {principal}: {e}")
            raise UpstreamFailure("Failed to upload photo", UPLOADING_STAGE) from e

        try:
            photo_count = await self._bounded(self.profile_store.append_photo_reference(principal, url))
        except asyncio.TimeoutError:
            raise UpstreamFailure("Saving photo reference timed out", PERSISTING_STAGE)
        except Exception as e:
            logger.error(f"Photo reference update failed for {principal}: {e}")
            raise UpstreamFailure("Failed to save photo reference", PERSISTING_STAGE) from e

        logger.info(f"Enrolled photo {path} for {principal} ({photo_count} stored)")
        return {
            'path': path,
            'url': url,
            'photo_count': photo_count,
            'validation': result.to_dict()
        }


# Singleton instance for reuse
_enrollment_instance: Optional[EnrollmentService] = None


def get_enrollment_service() -> EnrollmentService:
    """
    Get singleton instance of EnrollmentService
    """
    global _enrollment_instance
    if _enrollment_instance is None:
        _enrollment_instance = EnrollmentService()
    return _enrollment_instance
