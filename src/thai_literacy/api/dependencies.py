from fastapi import Depends

from thai_literacy.core.services.database import DatabaseService
from thai_literacy.core.services.database import get_db_service as _get_db_service
from thai_literacy.core.services.grading_service import GradingService
from thai_literacy.core.services.handwriting_service import HandwritingService
from thai_literacy.core.services.image_storage_service import ImageStorageService
from thai_literacy.core.services.notification_service import NotificationService
from thai_literacy.core.services.progression_service import ProgressionService
from thai_literacy.core.services.vision_service import get_vision_verifier
import logging

logger = logging.getLogger(__name__)


def get_db_service() -> DatabaseService:
    # Delegate to the core database singleton so tests and the API share the
    # same DatabaseService instance.
    return _get_db_service()


def get_notification_service(
    db: DatabaseService = Depends(get_db_service),
) -> NotificationService:
    return NotificationService(db)


def get_progression_service(
    db: DatabaseService = Depends(get_db_service),
    notifications: NotificationService = Depends(get_notification_service),
) -> ProgressionService:
    return ProgressionService(db, notifications)


def get_grading_service(
    db: DatabaseService = Depends(get_db_service),
    notifications: NotificationService = Depends(get_notification_service),
) -> GradingService:
    return GradingService(db, notifications)


def get_vision_verifier_dependency():
    """Vision verifier; overridden with a fake in tests"""
    return get_vision_verifier()


def get_image_storage() -> ImageStorageService:
    return ImageStorageService()


def get_handwriting_service(
    db: DatabaseService = Depends(get_db_service),
    verifier=Depends(get_vision_verifier_dependency),
    storage: ImageStorageService = Depends(get_image_storage),
) -> HandwritingService:
    return HandwritingService(db, verifier, storage)
