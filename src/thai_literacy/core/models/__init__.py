"""
Models package for the Thai literacy backend

This package contains all database models, enums and the identifier type.
"""

from .ids import EntityId, IdLike, new_id, normalize_id, try_normalize_id
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
)

__all__ = [
    "EntityId",
    "IdLike",
    "new_id",
    "normalize_id",
    "try_normalize_id",
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
]
