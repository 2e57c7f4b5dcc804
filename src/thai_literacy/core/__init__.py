"""
Core module for the Thai literacy backend
"""

from .models import (
    Base,
    Classroom,
    Student,
    Lesson,
    Test,
    Question,
    Game,
    LessonProgress,
    TestAttempt,
    GameAttempt,
    WritingAttempt,
    Notification,
    TestType,
    NotificationType,
    LessonStatus,
    EntityId,
    normalize_id,
)
from .services import (
    DatabaseService,
    get_db_service,
    init_db_service,
    LoggingService,
    get_logging_service,
    get_logger,
)

__all__ = [
    # Models
    "Base",
    "Classroom",
    "Student",
    "Lesson",
    "Test",
    "Question",
    "Game",
    "LessonProgress",
    "TestAttempt",
    "GameAttempt",
    "WritingAttempt",
    "Notification",
    "TestType",
    "NotificationType",
    "LessonStatus",
    "EntityId",
    "normalize_id",
    # Services
    "DatabaseService",
    "get_db_service",
    "init_db_service",
    "LoggingService",
    "get_logging_service",
    "get_logger",
]
