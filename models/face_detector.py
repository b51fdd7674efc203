import logging
import numpy as np
from typing import List, Optional
from dataclasses import dataclass

try:
    from insightface.app import FaceAnalysis
    INSIGHTFACE_AVAILABLE = True
except ImportError:
    INSIGHTFACE_AVAILABLE = False

from config import FACE_MODEL_NAME, FACE_DEVICE, FACE_DET_SIZE

logger = logging.getLogger(__name__)

if not INSIGHTFACE_AVAILABLE:
    logger.warning("insightface not installed. Face detection will not work.")


@dataclass(frozen=True)
class DetectedFace:
    """One detected face and its fixed-length descriptor"""
    descriptor: List[float]
    confidence: float


class FaceDetector:
    """
    Face detector + descriptor extractor using InsightFace (ArcFace).

    Treated as a black box: a frame goes in, one descriptor (or None) comes out.
    """

    def __init__(self, model_name: str = None, device: str = None):
        """
        Initialize InsightFace

        Args:
            model_name: InsightFace model pack ('buffalo_l', 'buffalo_s', etc.)
            device: 'cpu' or 'cuda'
        """
        self.model_name = model_name or FACE_MODEL_NAME
        self.device = device or FACE_DEVICE

        if INSIGHTFACE_AVAILABLE:
            providers = ['CPUExecutionProvider']
            if self.device == 'cuda':
                providers = ['CUDAExecutionProvider', 'CPUExecutionProvider']

            self.app = FaceAnalysis(name=self.model_name, providers=providers)
            ctx_id = 0 if self.device == 'cuda' else -1
            self.app.prepare(ctx_id=ctx_id, det_size=FACE_DET_SIZE)
        else:
            self.app = None

    @property
    def available(self) -> bool:
        return self.app is not None

    def detect(self, frame: np.ndarray) -> Optional[DetectedFace]:
        """
        Detect the largest face in a frame and extract its descriptor

        Args:
            frame: Image in BGR format (OpenCV)

        Returns:
            DetectedFace, or None if no face was found
        """
        if self.app is None:
            raise RuntimeError("InsightFace not available. Please install insightface.")

        if frame is None or frame.size == 0:
            return None

        faces = self.app.get(frame)
        if len(faces) == 0:
            return None

        # Largest face by box area
        face = max(faces, key=lambda f: (f.bbox[2] - f.bbox[0]) * (f.bbox[3] - f.bbox[1]))

        return DetectedFace(
            descriptor=[float(v) for v in face.normed_embedding],
            confidence=float(face.det_score)
        )


# Singleton instance for reuse
_detector_instance: Optional[FaceDetector] = None


def get_face_detector() -> FaceDetector:
    """
    Get singleton instance of FaceDetector
    """
    global _detector_instance
    if _detector_instance is None:
        _detector_instance = FaceDetector()
    return _detector_instance
