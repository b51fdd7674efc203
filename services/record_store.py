"""
Attendance Record Store

Append-only persistence of attendance events. Inserts are keyed on the
submission id: repeating an insert with the same id returns the existing
record instead of creating a second one.
"""

import logging
import uuid
from typing import Callable, Dict, List, Optional

from sqlalchemy import select, func, case
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from database.models import AttendanceRecord
from models.attendance import AttendanceEvent, AttendanceStatus

logger = logging.getLogger(__name__)


class RecordStoreError(Exception):
    """Raised when an attendance record cannot be written or read"""
    pass


def _record_to_dict(row: AttendanceRecord) -> Dict:
    return {
        'id': row.id,
        'submission_id': row.submission_id,
        'user_id': row.user_id,
        'confidence_score': row.confidence_score,
        'status': row.status,
        'image_url': row.image_url,
        'created_at': row.created_at.isoformat() if row.created_at else None
    }


class SqlAttendanceRecordStore:
    """Record store on top of the async SQLAlchemy session factory"""

    def __init__(self, session_factory: Callable = None):
        if session_factory is None:
            from database.connection import get_session_factory
            session_factory = get_session_factory()
        self._session_factory = session_factory

    async def _find_by_submission(self, session, submission_id: str) -> Optional[str]:
        result = await session.execute(
            select(AttendanceRecord.id).where(AttendanceRecord.submission_id == submission_id)
        )
        return result.scalar_one_or_none()

    async def insert(self, event: AttendanceEvent) -> str:
        """
        Persist one attendance event.

        Returns:
            Record id (existing id if this submission was already stored)

        Raises:
            RecordStoreError: On any database failure
        """
        try:
            async with self._session_factory() as session:
                existing_id = await self._find_by_submission(session, event.submission_id)
                if existing_id is not None:
                    logger.info(f"Submission {event.submission_id} already recorded as {existing_id}")
                    return existing_id

                row = AttendanceRecord(
                    id=str(uuid.uuid4()),
                    submission_id=event.submission_id,
                    user_id=event.principal,
                    confidence_score=event.confidence_score,
                    status=event.status.value,
                    face_vector=list(event.captured_descriptor),
                    image_url=event.image_reference,
                    created_at=event.timestamp
                )
                session.add(row)
                try:
                    await session.commit()
                except IntegrityError:
                    # Concurrent insert of the same submission won the race
                    await session.rollback()
                    existing_id = await self._find_by_submission(session, event.submission_id)
                    if existing_id is None:
                        raise
                    return existing_id
                return row.id
        except SQLAlchemyError as e:
            raise RecordStoreError(f"Failed to save attendance record: {e}") from e

    async def list_for_principal(self, principal: str, limit: int = 50) -> List[Dict]:
        """Records of one principal, newest first"""
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(AttendanceRecord)
                    .where(AttendanceRecord.user_id == principal)
                    .order_by(AttendanceRecord.created_at.desc())
                    .limit(limit)
                )
                return [_record_to_dict(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise RecordStoreError(f"Failed to read attendance records: {e}") from e

    async def get_stats(self, principal: str) -> Dict:
        """Total / present / absent counts and attendance rate (percent, 2 dp)"""
        present = AttendanceStatus.PRESENT.value
        absent = AttendanceStatus.ABSENT.value
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(
                        func.count(AttendanceRecord.id),
                        func.sum(case((AttendanceRecord.status == present, 1), else_=0)),
                        func.sum(case((AttendanceRecord.status == absent, 1), else_=0)),
                    ).where(AttendanceRecord.user_id == principal)
                )
                total, present_count, absent_count = result.one()
        except SQLAlchemyError as e:
            raise RecordStoreError(f"Failed to read attendance stats: {e}") from e

        total = total or 0
        present_count = present_count or 0
        return {
            'total_records': total,
            'present_count': present_count,
            'absent_count': absent_count or 0,
            'attendance_rate': round(present_count / total * 100, 2) if total else None
        }


# Singleton instance for reuse
_record_store_instance: Optional[SqlAttendanceRecordStore] = None


def get_record_store() -> SqlAttendanceRecordStore:
    """
    Get singleton instance of SqlAttendanceRecordStore
    """
    global _record_store_instance
    if _record_store_instance is None:
        _record_store_instance = SqlAttendanceRecordStore()
    return _record_store_instance
