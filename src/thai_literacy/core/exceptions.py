"""
Custom exceptions for the Thai literacy backend

This module contains all custom exceptions used throughout the application.
Every exception carries a localized ``user_message`` that is safe to show to a
student; ``str(exc)`` keeps the internal diagnostic detail.
"""

from typing import Optional


class ThaiLiteracyException(Exception):
    """Base exception for all Thai literacy exceptions"""

    default_user_message = "เกิดข้อผิดพลาด กรุณาลองใหม่อีกครั้ง"

    def __init__(self, message: str = "", user_message: Optional[str] = None):
        super().__init__(message or self.default_user_message)
        self.user_message = user_message or self.default_user_message


class DatabaseError(ThaiLiteracyException):
    """Raised when a primary database write fails"""


# --- Not found ---


class NotFoundError(ThaiLiteracyException):
    """Raised when a requested entity does not exist"""

    default_user_message = "ไม่พบข้อมูล"


class LessonNotFoundError(NotFoundError):
    """Raised when a lesson is not found"""

    default_user_message = "ไม่พบบทเรียน"


class TestNotFoundError(NotFoundError):
    """Raised when a test is not found"""

    __test__ = False  # not a pytest class
    default_user_message = "ไม่พบแบบทดสอบ"


class GameNotFoundError(NotFoundError):
    """Raised when a game is not found"""

    default_user_message = "ไม่พบเกม"


class StudentNotFoundError(NotFoundError):
    """Raised when a student is not found"""

    default_user_message = "ไม่พบข้อมูลนักเรียน"


class NotificationNotFoundError(NotFoundError):
    """Raised when a notification is not found for the student"""

    default_user_message = "ไม่พบการแจ้งเตือน"


# --- Validation ---


class ValidationError(ThaiLiteracyException):
    """Raised when validation fails"""

    default_user_message = "ข้อมูลไม่ถูกต้อง"


class MissingImageError(ValidationError):
    """Raised when no image payload was sent"""

    default_user_message = "กรุณาส่งรูปภาพ"


class InvalidImageError(ValidationError):
    """Raised when the image payload is not a data:image URL"""

    default_user_message = "รูปแบบรูปภาพไม่ถูกต้อง"


class EmptyCanvasError(ValidationError):
    """Raised when the encoded image is too small to contain writing"""

    default_user_message = "กรุณาเขียนอักษรบนกระดานก่อนตรวจสอบ"


class MissingTargetWordError(ValidationError):
    """Raised when the target word is empty"""

    default_user_message = "กรุณาระบุคำที่ต้องการตรวจสอบ"


class InvalidAnswersError(ValidationError):
    """Raised when submitted answers are malformed"""

    default_user_message = "รูปแบบคำตอบไม่ถูกต้อง"


# --- External services ---


class AIServiceError(ThaiLiteracyException):
    """Raised when the AI vision service fails"""

    default_user_message = "เกิดข้อผิดพลาดในการตรวจสอบลายมือ"


ExternalServiceError = AIServiceError


class VisionAuthError(AIServiceError):
    """Raised when the vision API rejects the credentials"""

    default_user_message = (
        "Gemini API authentication failed. Please check your API key configuration."
    )


class ConfigurationError(VisionAuthError):
    """Raised when the vision API key is not configured"""

    default_user_message = "ระบบตรวจลายมือยังไม่พร้อมใช้งาน"


class VisionQuotaError(AIServiceError):
    """Raised when the vision API quota or rate limit is exhausted"""

    default_user_message = "Gemini API quota exceeded. Please try again later."


class VisionNetworkError(AIServiceError):
    """Raised on connection failures and timeouts"""

    default_user_message = "ไม่สามารถเชื่อมต่อระบบตรวจลายมือได้ กรุณาลองใหม่อีกครั้ง"


class VisionResponseError(AIServiceError):
    """Raised when the vision API reply cannot be parsed"""

    default_user_message = "Failed to parse AI response. Please try again."


class DetectionFailedError(AIServiceError):
    """Raised by the legacy detector when no character could be detected"""

    default_user_message = "ไม่สามารถตรวจจับตัวอักษรได้ กรุณาเขียนให้ชัดเจนขึ้น"


# --- Degraded side effects ---


class StorageDegradedError(ThaiLiteracyException):
    """Raised when image storage is unavailable"""


class NotificationError(ThaiLiteracyException):
    """Raised when a notification cannot be written"""
