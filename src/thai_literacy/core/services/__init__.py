"""
Core services for the Thai literacy backend
"""

from .database import DatabaseService, get_db_service, init_db_service, reset_db_service
from .logging import LoggingService, get_logging_service, get_logger
from .settings_config_service import (
    SettingsConfigService,
    get_settings_service,
    reset_settings_service,
)
from .vision_service import GeminiVisionVerifier, RawVerdict, get_vision_verifier
from .image_storage_service import ImageStorageService, StoredImage

# Engines
from .notification_service import NotificationService, get_notification_service
from .progression_service import ProgressionService, LessonView, get_progression_service
from .grading_service import GradingService, AttemptResult, GameResult, get_grading_service
from .handwriting_service import (
    HandwritingService,
    VerifiedResult,
    apply_trust_policy,
    get_handwriting_service,
)
from .content_migration_service import (
    ContentMigrationService,
    MigrationReport,
    get_content_migration_service,
)

__all__ = [
    "DatabaseService",
    "get_db_service",
    "init_db_service",
    "reset_db_service",
    "LoggingService",
    "get_logging_service",
    "get_logger",
    "SettingsConfigService",
    "get_settings_service",
    "reset_settings_service",
    "GeminiVisionVerifier",
    "RawVerdict",
    "get_vision_verifier",
    "ImageStorageService",
    "StoredImage",
    # Engines
    "NotificationService",
    "get_notification_service",
    "ProgressionService",
    "LessonView",
    "get_progression_service",
    "GradingService",
    "AttemptResult",
    "GameResult",
    "get_grading_service",
    "HandwritingService",
    "VerifiedResult",
    "apply_trust_policy",
    "get_handwriting_service",
    "ContentMigrationService",
    "MigrationReport",
    "get_content_migration_service",
]
