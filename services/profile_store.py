"""
Profile Store

SQL-backed access to user profiles: stored-photo count for quota checks,
enrollment photo references, and contact details for notifications.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from database.models import Profile

logger = logging.getLogger(__name__)


class ProfileStoreError(Exception):
    """Raised when the profile store cannot complete a read or write"""
    pass


@dataclass
class ProfileRecord:
    """Profile snapshot returned to callers"""
    id: str
    email: str
    full_name: str
    roll_number: str
    face_photos: List[str] = field(default_factory=list)
    password_hash: Optional[str] = None

    @classmethod
    def from_row(cls, row: Profile) -> "ProfileRecord":
        return cls(
            id=row.id,
            email=row.email,
            full_name=row.full_name,
            roll_number=row.roll_number,
            face_photos=list(row.face_photos or []),
            password_hash=row.password_hash
        )

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'email': self.email,
            'full_name': self.full_name,
            'roll_number': self.roll_number,
            'face_photo_count': len(self.face_photos)
        }


class SqlProfileStore:
    """Profile store on top of the async SQLAlchemy session factory"""

    def __init__(self, session_factory: Callable = None):
        if session_factory is None:
            from database.connection import get_session_factory
            session_factory = get_session_factory()
        self._session_factory = session_factory

    async def create_profile(
        self,
        email: str,
        password_hash: str,
        full_name: str,
        roll_number: str
    ) -> ProfileRecord:
        """Insert a new profile. Raises ProfileStoreError on conflict or failure."""
        try:
            async with self._session_factory() as session:
                row = Profile(
                    id=str(uuid.uuid4()),
                    email=email,
                    password_hash=password_hash,
                    full_name=full_name,
                    roll_number=roll_number,
                    face_photos=[]
                )
                session.add(row)
                await session.commit()
                return ProfileRecord.from_row(row)
        except SQLAlchemyError as e:
            raise ProfileStoreError(f"Failed to create profile: {e}") from e

    async def get_profile(self, principal: str) -> Optional[ProfileRecord]:
        try:
            async with self._session_factory() as session:
                row = await session.get(Profile, principal)
                return ProfileRecord.from_row(row) if row else None
        except SQLAlchemyError as e:
            raise ProfileStoreError(f"Failed to read profile: {e}") from e

    async def get_profile_by_email(self, email: str) -> Optional[ProfileRecord]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(Profile).where(Profile.email == email))
                row = result.scalar_one_or_none()
                return ProfileRecord.from_row(row) if row else None
        except SQLAlchemyError as e:
            raise ProfileStoreError(f"Failed to read profile: {e}") from e

    async def get_stored_photo_count(self, principal: str) -> int:
        """Number of enrollment photos currently stored; 0 for an unknown principal"""
        profile = await self.get_profile(principal)
        if profile is None:
            return 0
        return len(profile.face_photos)

    async def append_photo_reference(self, principal: str, url: str) -> int:
        """
        Append one photo URL to the profile.

        Returns:
            New stored-photo count
        """
        try:
            async with self._session_factory() as session:
                row = await session.get(Profile, principal)
                if row is None:
                    raise ProfileStoreError(f"Profile not found: {principal}")
                # Reassign so the JSON column is flagged dirty
                row.face_photos = list(row.face_photos or []) + [url]
                await session.commit()
                return len(row.face_photos)
        except SQLAlchemyError as e:
            raise ProfileStoreError(f"Failed to append photo reference: {e}") from e


# Singleton instance for reuse
_profile_store_instance: Optional[SqlProfileStore] = None


def get_profile_store() -> SqlProfileStore:
    """
    Get singleton instance of SqlProfileStore
    """
    global _profile_store_instance
    if _profile_store_instance is None:
        _profile_store_instance = SqlProfileStore()
    return _profile_store_instance
