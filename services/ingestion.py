"""
Ingestion Service

Trust boundary for uploaded face images. Composes the ownership check, the
upload quota guard and the image format validator:

1. principal must own the upload (checked before any byte is looked at)
2. stored-photo count must be under the cap
3. payload must be a well-formed image data URI
4. decoded bytes must pass the format validator
"""

import asyncio
import logging
from typing import Optional

import config
from models.errors import AuthorizationError, QuotaExceededError, UpstreamFailure
from models.image_validator import ImageFormatValidator, ValidationResult, get_image_validator
from models.quota_guard import check_quota, quota_message
from services.profile_store import ProfileStoreError
from utils.image_utils import parse_image_data_uri

logger = logging.getLogger(__name__)

VALIDATING_STAGE = "validating"


class IngestionService:
    """
    Admits or rejects one uploaded image on behalf of a principal.

    The profile store only needs `get_stored_photo_count(principal)`.
    """

    def __init__(
        self,
        profile_store=None,
        validator: ImageFormatValidator = None,
        quota_limit: int = None,
        read_timeout: float = None
    ):
        if profile_store is None:
            from services.profile_store import get_profile_store
            profile_store = get_profile_store()
        self.profile_store = profile_store
        self.validator = validator or get_image_validator()
        self.quota_limit = quota_limit or config.MAX_UPLOADS_PER_DAY
        self._read_timeout = read_timeout

    @property
    def read_timeout(self) -> float:
        if self._read_timeout is not None:
            return self._read_timeout
        return config.STAGE_TIMEOUT_SECONDS

    async def _read_stored_count(self, principal: str) -> int:
        try:
            return await asyncio.wait_for(
                self.profile_store.get_stored_photo_count(principal),
                timeout=self.read_timeout
            )
        except asyncio.TimeoutError:
            raise UpstreamFailure("Profile store timed out while checking upload quota", VALIDATING_STAGE)
        except ProfileStoreError as e:
            logger.error(f"Quota read failed for {principal}: {e}")
            raise UpstreamFailure("Could not verify upload quota", VALIDATING_STAGE) from e

    async def admit(
        self,
        principal: str,
        claimed_owner_id: str,
        image_data_uri: str
    ) -> ValidationResult:
        """
        Run the admission checks in order, stopping at the first failure.

        Returns:
            The validator's ValidationResult, unchanged (may be valid=False)

        Raises:
            AuthorizationError: principal is not the claimed owner
            UpstreamFailure: stored-photo count could not be read
            QuotaExceededError: cumulative photo cap reached
            MalformedInputError: payload is not a decodable image data URI
        """
        if principal != claimed_owner_id:
            logger.warning(
                f"SECURITY: principal {principal} attempted upload for {claimed_owner_id}"
            )
            raise AuthorizationError("Unauthorized: Cannot upload for another user")

        stored_count = await self._read_stored_count(principal)
        if not check_quota(stored_count, self.quota_limit):
            logger.info(f"Quota reached for {principal} ({stored_count}/{self.quota_limit})")
            raise QuotaExceededError(quota_message(self.quota_limit), self.quota_limit)

        declared_type, image_bytes = parse_image_data_uri(image_data_uri)
        logger.debug(f"Decoded {len(image_bytes)} bytes (declared image/{declared_type})")

        return self.validator.validate(image_bytes)


# Singleton instance for reuse
_ingestion_instance: Optional[IngestionService] = None


def get_ingestion_service() -> IngestionService:
    """
    Get singleton instance of IngestionService
    """
    global _ingestion_instance
    if _ingestion_instance is None:
        _ingestion_instance = IngestionService()
    return _ingestion_instance
