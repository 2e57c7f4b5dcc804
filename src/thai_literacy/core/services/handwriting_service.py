"""
Handwriting Service
Validates canvas submissions, asks the vision model for a verdict, and applies
the trust-reduction policy before anything is stored or shown to a student.

The policy is monotonic: each check can only turn a correct verdict into an
incorrect one or lower the confidence, never the reverse.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .database import DatabaseService, get_db_service
from .image_storage_service import ImageStorageService, StoredImage
from .logging import get_logging_service
from .vision_service import RawVerdict, VisionVerifier, clamp_confidence, get_vision_verifier
from ..exceptions import (
    DetectionFailedError,
    EmptyCanvasError,
    InvalidImageError,
    MissingImageError,
    MissingTargetWordError,
    StorageDegradedError,
    StudentNotFoundError,
)
from ..models import IdLike

DATA_URL_PREFIX = "data:image/"
MIN_PAYLOAD_LENGTH = 100
METHOD = "Gemini"

ACCEPT_CONFIDENCE = 80
STRONG_CONFIDENCE = 90
FLOOR_CONFIDENCE = 40

RANDOM_PATTERN = re.compile(r"(random|scribble|circle|line|doodle|shape)", re.IGNORECASE)

NEGATIVE_TRACING_KEYWORDS = (
    "messy",
    "scribble",
    "scribbles",
    "ไม่ทับ",
    "นอกกรอบ",
    "เขียนนอก",
    "เขียนมั่ว",
    "ไม่ตาม",
    "ไม่ตรง",
    "ห่าง",
    "gap",
    "random",
    "messed",
    "zig",
    "zag",
    "หลายเส้น",
    "ทับกัน",
    "ระบาย",
    "coloring",
    "thick",
    "หนาเกิน",
)

POSITIVE_TRACING_KEYWORDS = (
    "ทับเส้นประ",
    "ตามเส้น",
    "ชัดเจน",
    "เส้นเดียว",
    "ดีมาก",
    "ถูกต้อง",
)

MSG_TRACE_CLEARER = "ลองเขียนตามเส้นประให้ชัดเจนขึ้นนะ"
MSG_TRACE_CLOSER = "ลองเขียนให้ใกล้เส้นประมากขึ้น พยายามอีกนิดนะ"
MSG_TRACE_DEFAULT = "กรุณาเขียนตามเส้นประให้ถูกต้อง"


@dataclass
class VerifiedResult:
    """Sanitized verdict returned to the student"""

    detected_text: str
    is_correct: bool
    confidence: int
    explanation: str
    target_word: str
    method: str = METHOD
    attempt_id: Optional[str] = None
    image_url: Optional[str] = None
    image_data: Optional[str] = None
    rejections: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detected_text": self.detected_text,
            "is_correct": self.is_correct,
            "target_word": self.target_word,
            "confidence": self.confidence,
            "explanation": self.explanation,
            "image_url": self.image_url,
            "image_data": self.image_data,
            "attempt_id": self.attempt_id,
            "method": self.method,
        }


def validate_submission(image_data: Any, target_word: Any) -> str:
    """
    Check a canvas submission before any external call is made.

    Returns:
        The base64 payload that follows the data URL header

    Raises:
        MissingImageError, MissingTargetWordError, InvalidImageError,
        EmptyCanvasError
    """
    if not image_data:
        raise MissingImageError("imageData is required")
    if not isinstance(target_word, str) or not target_word.strip():
        raise MissingTargetWordError("targetWord is required")
    if not isinstance(image_data, str) or not image_data.startswith(DATA_URL_PREFIX):
        raise InvalidImageError("imageData must be a data:image URL")

    payload = image_data.partition(",")[2]
    if len(payload) < MIN_PAYLOAD_LENGTH:
        raise EmptyCanvasError(
            f"Image payload has {len(payload)} chars, expected at least {MIN_PAYLOAD_LENGTH}"
        )
    return payload


def _contains_any(text: str, keywords: Tuple[str, ...]) -> bool:
    return any(keyword in text for keyword in keywords)


def apply_trust_policy(raw: RawVerdict, target_word: str) -> VerifiedResult:
    """Reduce trust in a raw verdict; never raises correctness or confidence"""
    detected_text = raw.detected_text or ""
    is_correct = bool(raw.is_correct)
    raw_confidence = clamp_confidence(raw.confidence)
    confidence = raw_confidence
    rejections: List[str] = []

    is_match = detected_text.casefold().strip() == target_word.casefold().strip()
    is_random = bool(RANDOM_PATTERN.search(detected_text)) or (
        len(detected_text) > len(target_word) + 3
    )
    meets_threshold = raw_confidence >= ACCEPT_CONFIDENCE

    if is_random:
        rejections.append("random_pattern")
        is_correct = False
        confidence = min(confidence, 30)

    if is_correct:
        explanation_lower = (raw.explanation or "").lower()

        if not is_match:
            rejections.append("character_mismatch")
            is_correct = False
            confidence = min(confidence, 40)

        if confidence < ACCEPT_CONFIDENCE:
            rejections.append("low_confidence")
            is_correct = False
            confidence = min(confidence, 50)

        if _contains_any(explanation_lower, NEGATIVE_TRACING_KEYWORDS):
            rejections.append("tracing_issue")
            is_correct = False
            confidence = min(confidence, 30)

        if (
            not _contains_any(explanation_lower, POSITIVE_TRACING_KEYWORDS)
            and confidence < STRONG_CONFIDENCE
        ):
            rejections.append("no_clean_trace")
            is_correct = False
            confidence = min(confidence, 40)

    if confidence < FLOOR_CONFIDENCE:
        is_correct = False

    explanation = raw.explanation or ""
    if not is_correct:
        if not is_match and not is_random:
            explanation = (
                f'เขียนได้ "{detected_text}" แต่ควรเขียน "{target_word}" '
                "ลองเขียนให้ตรงกับอักษรที่กำหนด"
            )
        elif is_random or confidence < 50:
            explanation = MSG_TRACE_CLEARER
        elif not meets_threshold:
            explanation = MSG_TRACE_CLOSER
        else:
            explanation = explanation or MSG_TRACE_DEFAULT

    return VerifiedResult(
        detected_text=detected_text,
        is_correct=is_correct,
        confidence=confidence,
        explanation=explanation,
        target_word=target_word,
        rejections=rejections,
    )


class HandwritingService:
    """Handwriting verification pipeline"""

    def __init__(
        self,
        db: Optional[DatabaseService] = None,
        verifier: Optional[VisionVerifier] = None,
        storage: Optional[ImageStorageService] = None,
    ):
        self.db = db or get_db_service()
        self.verifier = verifier or get_vision_verifier()
        self.storage = storage or ImageStorageService()
        self.logging_service = get_logging_service()
        self.logger = self.logging_service.get_logger("handwriting")

    def _verify(self, payload: str, target_word: str, student_id: Optional[str] = None):
        raw = self.verifier.detect(payload, target_word)
        result = apply_trust_policy(raw, target_word)
        self.logging_service.log_handwriting_verdict(
            target_word,
            result.detected_text,
            raw.confidence,
            result.confidence,
            result.is_correct,
            rejections=result.rejections,
            student_id=student_id,
        )
        return result

    def _store_image(
        self, student_id: str, target_word: str, payload: str
    ) -> Optional[StoredImage]:
        """Persist the image; failures degrade to inline storage"""
        try:
            raw_bytes = self.storage.decode_payload(payload)
            return self.storage.save(student_id, target_word, raw_bytes)
        except StorageDegradedError as e:
            self.logging_service.log_error(
                "storage_degraded", str(e), student_id=student_id, level="WARNING"
            )
            return None

    def save_and_detect(
        self, student_id: IdLike, image_data: str, target_word: str
    ) -> VerifiedResult:
        """
        Verify a handwriting submission and record it.

        Args:
            student_id: Student submitting the canvas
            image_data: ``data:image/...;base64,`` URL of the canvas
            target_word: Character the student was asked to trace

        Returns:
            VerifiedResult with the stored attempt id

        Raises:
            ValidationError: For malformed submissions (no external call made)
            StudentNotFoundError: If the student does not exist
            ExternalServiceError: If the vision call fails
        """
        payload = validate_submission(image_data, target_word)
        target_word = target_word.strip()

        student = self.db.get_student(student_id)
        if not student:
            raise StudentNotFoundError(f"Student {student_id} not found")

        stored = self._store_image(student.id, target_word, payload)
        inline_data = image_data if stored is None else None

        result = self._verify(payload, target_word, student.id)

        attempt = self.db.create_writing_attempt(
            {
                "student_id": student.id,
                "target_word": target_word,
                "image_path": stored.path if stored else None,
                "image_url": stored.url if stored else None,
                "image_data": inline_data,
                "detected_text": result.detected_text,
                "is_correct": result.is_correct,
                "confidence": result.confidence,
                "explanation": result.explanation,
                "method": result.method,
            }
        )

        result.attempt_id = attempt.id
        result.image_url = stored.url if stored else None
        result.image_data = inline_data
        return result

    def detect(self, image_data: str, target_word: str) -> VerifiedResult:
        """Verify without recording; an empty detection is a failure"""
        payload = validate_submission(image_data, target_word)
        result = self._verify(payload, target_word.strip())
        if not result.detected_text:
            raise DetectionFailedError("Vision model detected no character")
        return result

    def get_writing_history(
        self, student_id: IdLike, limit: int = 50, offset: int = 0
    ) -> Dict[str, Any]:
        """Student's writing attempts, newest first"""
        if not self.db.get_student(student_id):
            raise StudentNotFoundError(f"Student {student_id} not found")
        attempts, total = self.db.list_writing_attempts(
            student_id, limit=max(limit, 0), offset=max(offset, 0)
        )
        return {"attempts": attempts, "total": total, "limit": limit, "offset": offset}


def get_handwriting_service() -> HandwritingService:
    """Handwriting service bound to the global database and verifier"""
    return HandwritingService()
