"""
Attendance Submission Orchestrator

Drives one attendance submission through its stages:

    idle -> capturing -> validating -> uploading -> persisting -> notifying -> done

`errored` is reachable from validating, uploading and persisting. A frame
with no face returns to `idle` so the user can retry.

Ordering rules:
- nothing is written anywhere until validation has passed
- a failed image upload is logged and the record is saved without an image
- a failed record insert fails the whole submission and skips notification
- the notification runs as a detached task and never changes the outcome
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

import numpy as np

import config
from models.attendance import AttendanceEvent, AttendanceStatus
from models.errors import AttendanceError, ErrorKind
from models.image_validator import ValidationResult
from utils.image_utils import encode_frame_jpeg, to_data_uri

logger = logging.getLogger(__name__)


class SubmissionState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    VALIDATING = "validating"
    UPLOADING = "uploading"
    PERSISTING = "persisting"
    NOTIFYING = "notifying"
    DONE = "done"
    ERRORED = "errored"


ALLOWED_TRANSITIONS = {
    SubmissionState.IDLE: {SubmissionState.CAPTURING},
    SubmissionState.CAPTURING: {SubmissionState.IDLE, SubmissionState.VALIDATING},
    SubmissionState.VALIDATING: {SubmissionState.UPLOADING, SubmissionState.ERRORED},
    SubmissionState.UPLOADING: {SubmissionState.PERSISTING, SubmissionState.ERRORED},
    SubmissionState.PERSISTING: {SubmissionState.NOTIFYING, SubmissionState.ERRORED},
    SubmissionState.NOTIFYING: {SubmissionState.DONE},
    SubmissionState.DONE: set(),
    SubmissionState.ERRORED: set(),
}

NO_FACE_MESSAGE = "No face detected. Please try again."
CAPTURE_FAILED_MESSAGE = "Could not capture a face. Please try again."
SUCCESS_MESSAGE = "Attendance marked successfully!"


@dataclass(frozen=True)
class StageError:
    """Why and where a submission errored"""
    stage: SubmissionState
    kind: ErrorKind
    reason: str

    def to_dict(self) -> Dict:
        return {'stage': self.stage.value, 'kind': self.kind.value, 'reason': self.reason}


@dataclass
class SubmissionOutcome:
    """
    Externally observable result of one submission attempt.

    Attributes:
        submission_id: Idempotency key used for the record insert
        state: Terminal state (done / errored / idle)
        states: Every state visited, in order
        record_id: Persisted record id (done only)
        image_reference: Retrieval URL, None if no image was stored
        validation: Ingestion verdict, when validation ran
        error: Stage error (errored only)
        message: User-facing message
    """
    submission_id: str
    state: SubmissionState = SubmissionState.IDLE
    states: List[SubmissionState] = field(default_factory=lambda: [SubmissionState.IDLE])
    record_id: Optional[str] = None
    image_reference: Optional[str] = None
    validation: Optional[ValidationResult] = None
    error: Optional[StageError] = None
    message: Optional[str] = None

    @property
    def retry(self) -> bool:
        """True when capture found nothing and the user should try again"""
        return self.state == SubmissionState.IDLE

    def advance(self, new_state: SubmissionState):
        if new_state not in ALLOWED_TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal transition {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.states.append(new_state)

    def fail(self, kind: ErrorKind, reason: str) -> "SubmissionOutcome":
        stage = self.state
        self.advance(SubmissionState.ERRORED)
        self.error = StageError(stage, kind, reason)
        self.message = reason
        logger.warning(f"Submission {self.submission_id} errored at {stage.value}: {reason}")
        return self

    def to_dict(self) -> Dict:
        return {
            'submission_id': self.submission_id,
            'state': self.state.value,
            'states': [s.value for s in self.states],
            'record_id': self.record_id,
            'image_reference': self.image_reference,
            'error': self.error.to_dict() if self.error else None,
            'message': self.message,
            'retry': self.retry
        }


class AttendanceSubmissionOrchestrator:
    """
    Coordinates the detector, ingestion service and external stores.

    Collaborators are duck-typed:
        detector.detect(frame) -> DetectedFace | None   (blocking)
        ingestion.admit(principal, claimed_owner_id, data_uri) -> ValidationResult
        storage.put(path, data, content_type); storage.create_time_limited_url(path, ttl)
        record_store.insert(event) -> id
        profile_store.get_profile(principal) -> profile with email/full_name/roll_number
        notifier.send(address, template_data)
    """

    def __init__(
        self,
        ingestion=None,
        detector=None,
        storage=None,
        record_store=None,
        profile_store=None,
        notifier=None,
        stage_timeout: float = None,
        url_ttl_seconds: int = None,
        jpeg_quality: int = None,
        notifications_enabled: bool = None
    ):
        if ingestion is None:
            from services.ingestion import get_ingestion_service
            ingestion = get_ingestion_service()
        if detector is None:
            from models.face_detector import get_face_detector
            detector = get_face_detector()
        if storage is None:
            from services.object_storage import get_object_storage
            storage = get_object_storage()
        if record_store is None:
            from services.record_store import get_record_store
            record_store = get_record_store()
        if profile_store is None:
            from services.profile_store import get_profile_store
            profile_store = get_profile_store()
        if notifier is None:
            from services.notification import get_notifier
            notifier = get_notifier()

        self.ingestion = ingestion
        self.detector = detector
        self.storage = storage
        self.record_store = record_store
        self.profile_store = profile_store
        self.notifier = notifier

        self._stage_timeout = stage_timeout
        self._notifications_enabled = notifications_enabled
        self.url_ttl_seconds = url_ttl_seconds or config.ATTENDANCE_URL_TTL_SECONDS
        self.jpeg_quality = jpeg_quality or config.CAPTURE_JPEG_QUALITY

        # Detached notification tasks; held so they are not garbage collected
        self._pending_notifications: Set[asyncio.Task] = set()

    @property
    def stage_timeout(self) -> float:
        if self._stage_timeout is not None:
            return self._stage_timeout
        return config.STAGE_TIMEOUT_SECONDS

    @property
    def notifications_enabled(self) -> bool:
        if self._notifications_enabled is not None:
            return self._notifications_enabled
        return config.NOTIFICATIONS_ENABLED

    async def _bounded(self, awaitable):
        return await asyncio.wait_for(awaitable, timeout=self.stage_timeout)

    async def submit(
        self,
        principal: str,
        claimed_owner_id: str,
        frame: np.ndarray,
        submission_id: str = None
    ) -> SubmissionOutcome:
        """
        Run one submission to a terminal state.

        Args:
            principal: Authenticated principal id
            claimed_owner_id: Owner the client claims to submit for
            frame: Captured BGR frame
            submission_id: Client idempotency key (generated if omitted)

        Returns:
            SubmissionOutcome (never raises for stage failures)
        """
        outcome = SubmissionOutcome(submission_id=submission_id or uuid.uuid4().hex)

        # === Capturing ===
        outcome.advance(SubmissionState.CAPTURING)
        try:
            face = await self._bounded(asyncio.to_thread(self.detector.detect, frame))
            image_bytes = encode_frame_jpeg(frame, self.jpeg_quality) if face is not None else None
        except asyncio.TimeoutError:
            logger.error(f"Submission {outcome.submission_id}: face detection timed out")
            face, outcome.message = None, CAPTURE_FAILED_MESSAGE
        except Exception as e:
            logger.error(f"Submission {outcome.submission_id}: capture failed: {e}")
            face, outcome.message = None, CAPTURE_FAILED_MESSAGE

        if face is None:
            outcome.advance(SubmissionState.IDLE)
            outcome.message = outcome.message or NO_FACE_MESSAGE
            logger.info(f"Submission {outcome.submission_id}: no face captured, back to idle")
            return outcome

        # === Validating ===
        outcome.advance(SubmissionState.VALIDATING)
        try:
            result = await self.ingestion.admit(
                principal, claimed_owner_id, to_data_uri(image_bytes, "jpeg")
            )
        except AttendanceError as e:
            return outcome.fail(e.kind, e.message)

        outcome.validation = result
        if not result.valid:
            return outcome.fail(ErrorKind.VALIDATION_REJECTED, result.error_reason)

        # === Uploading ===
        outcome.advance(SubmissionState.UPLOADING)
        outcome.image_reference = await self._upload(principal, image_bytes, outcome.submission_id)

        # === Persisting ===
        outcome.advance(SubmissionState.PERSISTING)
        event = AttendanceEvent(
            principal=principal,
            captured_descriptor=tuple(face.descriptor),
            confidence_score=face.confidence,
            submission_id=outcome.submission_id,
            image_reference=outcome.image_reference,
            status=AttendanceStatus.PRESENT
        )
        try:
            outcome.record_id = await self._bounded(self.record_store.insert(event))
        except asyncio.TimeoutError:
            return outcome.fail(ErrorKind.UPSTREAM_FAILURE, "Saving the attendance record timed out. Please retry.")
        except Exception as e:
            logger.error(f"Submission {outcome.submission_id}: record insert failed: {e}")
            return outcome.fail(ErrorKind.UPSTREAM_FAILURE, "Failed to save attendance record. Please retry.")

        # === Notifying ===
        outcome.advance(SubmissionState.NOTIFYING)
        self._dispatch_notification(principal, event)

        outcome.advance(SubmissionState.DONE)
        outcome.message = SUCCESS_MESSAGE
        logger.info(f"Attendance recorded for {principal}: record {outcome.record_id}")
        return outcome

    async def _upload(self, principal: str, image_bytes: bytes, submission_id: str) -> Optional[str]:
        """Store the frame and sign a URL; None on any failure"""
        path = f"{principal}/{int(time.time() * 1000)}.jpg"
        try:
            await self._bounded(self.storage.put(path, image_bytes, "image/jpeg"))
            return await self._bounded(
                self.storage.create_time_limited_url(path, self.url_ttl_seconds)
            )
        except asyncio.TimeoutError:
            logger.warning(f"Submission {submission_id}: image upload timed out, continuing without image")
        except Exception as e:
            logger.warning(f"Submission {submission_id}: image upload failed, continuing without image: {e}")
        return None

    def _dispatch_notification(self, principal: str, event: AttendanceEvent):
        if not self.notifications_enabled:
            logger.info(f"Notifications disabled, skipping email for {principal}")
            return
        task = asyncio.create_task(self._notify(principal, event))
        self._pending_notifications.add(task)
        task.add_done_callback(self._pending_notifications.discard)

    async def _notify(self, principal: str, event: AttendanceEvent):
        try:
            profile = await self._bounded(self.profile_store.get_profile(principal))
            if profile is None or not profile.email:
                logger.warning(f"No contact address for {principal}, notification skipped")
                return
            await self._bounded(self.notifier.send(profile.email, {
                'name': profile.full_name,
                'roll_number': profile.roll_number,
                'status': event.status.value,
                'timestamp': event.timestamp.isoformat(),
                'confidence_score': event.confidence_score,
            }))
        except Exception as e:
            logger.warning(f"Notification for submission {event.submission_id} failed: {e}")

    async def drain_notifications(self):
        """Wait for in-flight notification tasks"""
        if self._pending_notifications:
            await asyncio.gather(*self._pending_notifications, return_exceptions=True)


# Singleton instance for reuse
_orchestrator_instance: Optional[AttendanceSubmissionOrchestrator] = None


def get_submission_orchestrator() -> AttendanceSubmissionOrchestrator:
    """
    Get singleton instance of AttendanceSubmissionOrchestrator
    """
    global _orchestrator_instance
    if _orchestrator_instance is None:
        _orchestrator_instance = AttendanceSubmissionOrchestrator()
    return _orchestrator_instance


async def drain_pending_notifications():
    """Drain the singleton's notification tasks, if it was ever created"""
    if _orchestrator_instance is not None:
        await _orchestrator_instance.drain_notifications()
