"""
Student API Routes

Lesson progression, tests, games, progress history and notifications of one
student. Authentication happens upstream; the student id is part of the path.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
import logging

from thai_literacy.api.dependencies import (
    get_db_service,
    get_grading_service,
    get_notification_service,
    get_progression_service,
)
from thai_literacy.api import serializers
from thai_literacy.core.exceptions import NotFoundError, StudentNotFoundError
from thai_literacy.core.models import TestType
from thai_literacy.core.services.database import DatabaseService
from thai_literacy.core.services.grading_service import GradingService
from thai_literacy.core.services.notification_service import NotificationService
from thai_literacy.core.services.progression_service import ProgressionService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/students", tags=["students"])


class ActivityInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    activity_id: str = Field(alias="activityId")
    answer: Any = None
    is_correct: bool = Field(default=False, alias="isCorrect")
    score: Optional[int] = None
    time_spent: Optional[int] = Field(default=None, alias="timeSpent")


class AnswerSubmission(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    answers: Any = None
    time_spent: int = Field(default=0, alias="timeSpent")


class GameSubmission(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    score: int
    level: int = 1
    time_spent: int = Field(default=0, alias="timeSpent")
    data: Optional[Dict[str, Any]] = None


def _resolve_classroom(
    db: DatabaseService, student_id: str, classroom_id: Optional[str]
) -> str:
    if classroom_id:
        return classroom_id
    student = db.get_student(student_id)
    if not student:
        raise StudentNotFoundError(f"Student {student_id} not found")
    if not student.classroom_id:
        raise NotFoundError(
            f"Student {student_id} has no classroom", user_message="ไม่พบห้องเรียน"
        )
    return student.classroom_id


# --- Lessons ---


@router.get("/{student_id}/lessons")
async def list_lessons(
    student_id: str,
    classroom_id: Optional[str] = None,
    db: DatabaseService = Depends(get_db_service),
    progression: ProgressionService = Depends(get_progression_service),
):
    """Lessons of the student's classroom with their per-student state."""
    classroom_id = _resolve_classroom(db, student_id, classroom_id)
    views = progression.compute_lesson_states(student_id, classroom_id)
    return {"success": True, "data": [serializers.lesson_view_dict(v) for v in views]}


@router.post("/{student_id}/lessons/{lesson_id}/complete")
async def complete_lesson(
    student_id: str,
    lesson_id: str,
    progression: ProgressionService = Depends(get_progression_service),
):
    progress = progression.complete_lesson(student_id, lesson_id)
    return {"success": True, "data": serializers.progress_dict(progress)}


@router.get("/{student_id}/lessons/{lesson_id}/pre-test-status")
async def get_pre_test_status(
    student_id: str,
    lesson_id: str,
    progression: ProgressionService = Depends(get_progression_service),
):
    return {"success": True, "data": progression.get_pre_test_status(student_id, lesson_id)}


@router.get("/{student_id}/lessons/{lesson_id}/post-test-status")
async def get_post_test_status(
    student_id: str,
    lesson_id: str,
    progression: ProgressionService = Depends(get_progression_service),
):
    return {
        "success": True,
        "data": progression.get_post_test_status(student_id, lesson_id),
    }


@router.post("/{student_id}/lessons/{lesson_id}/activities")
async def submit_activity(
    student_id: str,
    lesson_id: str,
    activity: ActivityInput,
    progression: ProgressionService = Depends(get_progression_service),
):
    progress = progression.submit_activity(
        student_id,
        lesson_id,
        activity.activity_id,
        activity.answer,
        activity.is_correct,
        score=activity.score,
        time_spent=activity.time_spent,
    )
    return {"success": True, "data": serializers.progress_dict(progress)}


# --- Tests ---


@router.get("/{student_id}/tests")
async def list_tests(
    student_id: str,
    classroom_id: Optional[str] = None,
    lesson_id: Optional[str] = None,
    type: Optional[TestType] = None,
    db: DatabaseService = Depends(get_db_service),
    grading: GradingService = Depends(get_grading_service),
):
    classroom_id = _resolve_classroom(db, student_id, classroom_id)
    rows = grading.get_student_tests(student_id, classroom_id, lesson_id, type)
    return {
        "success": True,
        "data": [
            {
                **serializers.test_dict(row["test"]),
                "questions": [serializers.question_dict(q) for q in row["questions"]],
                "lesson": serializers.lesson_dict(row["lesson"]),
                "attempts": [serializers.test_attempt_dict(a) for a in row["attempts"]],
                "attempted": row["attempted"],
                "last_attempt": serializers.test_attempt_dict(row["last_attempt"]),
            }
            for row in rows
        ],
    }


@router.post("/{student_id}/tests/{test_id}/submit")
async def submit_test(
    student_id: str,
    test_id: str,
    submission: AnswerSubmission,
    grading: GradingService = Depends(get_grading_service),
):
    result = grading.submit_test(
        student_id, test_id, submission.answers, submission.time_spent
    )
    return {
        "success": True,
        "data": {
            **serializers.test_attempt_dict(result.attempt),
            "correct_answers": result.correct_answers,
            "total_questions": result.total_questions,
            "stars": result.stars,
        },
    }


# --- Games ---


@router.get("/{student_id}/games")
async def list_games(
    student_id: str,
    classroom_id: Optional[str] = None,
    lesson_id: Optional[str] = None,
    type: Optional[str] = None,
    db: DatabaseService = Depends(get_db_service),
    grading: GradingService = Depends(get_grading_service),
):
    classroom_id = _resolve_classroom(db, student_id, classroom_id)
    rows = grading.get_student_games(student_id, classroom_id, lesson_id, type)
    return {
        "success": True,
        "data": [
            {
                **serializers.game_dict(row["game"]),
                "lesson": serializers.lesson_dict(row["lesson"]),
                "attempts": [serializers.game_attempt_dict(a) for a in row["attempts"]],
                "attempted": row["attempted"],
                "last_attempt": serializers.game_attempt_dict(row["last_attempt"]),
            }
            for row in rows
        ],
    }


@router.post("/{student_id}/games/{game_id}/submit")
async def submit_game(
    student_id: str,
    game_id: str,
    submission: GameSubmission,
    grading: GradingService = Depends(get_grading_service),
):
    result = grading.submit_game(
        student_id,
        game_id,
        submission.score,
        level=submission.level,
        time_spent=submission.time_spent,
        data=submission.data,
    )
    return {"success": True, "data": serializers.game_attempt_dict(result.attempt)}


# --- Progress & notifications ---


@router.get("/{student_id}/progress")
async def get_progress(
    student_id: str,
    progression: ProgressionService = Depends(get_progression_service),
):
    progress = progression.get_student_progress(student_id)
    return {"success": True, "data": serializers.student_progress_dict(progress)}


@router.get("/{student_id}/notifications")
async def list_notifications(
    student_id: str,
    unread_only: bool = False,
    notifications: NotificationService = Depends(get_notification_service),
):
    rows = notifications.list_for_student(student_id, unread_only)
    return {"success": True, "data": [serializers.notification_dict(n) for n in rows]}


@router.put("/{student_id}/notifications/{notification_id}/read")
async def mark_notification_read(
    student_id: str,
    notification_id: str,
    notifications: NotificationService = Depends(get_notification_service),
):
    notification = notifications.mark_as_read(student_id, notification_id)
    return {"success": True, "data": serializers.notification_dict(notification)}
