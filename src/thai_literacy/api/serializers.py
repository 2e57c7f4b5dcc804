"""
Response shaping for ORM rows and service results
"""

from typing import Any, Dict, List, Optional

from thai_literacy.core.models import (
    Game,
    GameAttempt,
    Lesson,
    LessonProgress,
    Notification,
    Question,
    Test,
    TestAttempt,
    WritingAttempt,
)
from thai_literacy.core.services.progression_service import LessonView, TestSummary


def lesson_dict(lesson: Optional[Lesson]) -> Optional[Dict[str, Any]]:
    if lesson is None:
        return None
    return {
        "id": lesson.id,
        "classroom_id": lesson.classroom_id,
        "title": lesson.title,
        "description": lesson.description,
        "content": lesson.content,
        "chapter": lesson.chapter,
        "order_index": lesson.order_index,
    }


def progress_dict(progress: Optional[LessonProgress]) -> Optional[Dict[str, Any]]:
    if progress is None:
        return None
    return {
        "id": progress.id,
        "lesson_id": progress.lesson_id,
        "is_completed": progress.is_completed,
        "completed_at": progress.completed_at,
        "time_spent": progress.time_spent,
        "activity_results": progress.activity_results or [],
        "updated_at": progress.updated_at,
    }


def question_dict(question: Question) -> Dict[str, Any]:
    # The answer key is never sent to students
    return {
        "id": question.id,
        "question": question.question,
        "options": question.options or [],
        "is_multiple_choice": question.is_multiple_choice,
        "image_url": question.image_url,
        "audio_url": question.audio_url,
        "order_index": question.order_index,
    }


def test_dict(test: Optional[Test]) -> Optional[Dict[str, Any]]:
    if test is None:
        return None
    return {
        "id": test.id,
        "lesson_id": test.lesson_id,
        "title": test.title,
        "type": test.type,
        "passing_score": test.passing_score,
    }


def game_dict(game: Optional[Game]) -> Optional[Dict[str, Any]]:
    if game is None:
        return None
    return {
        "id": game.id,
        "lesson_id": game.lesson_id,
        "title": game.title,
        "type": game.type,
        "settings": game.settings or {},
    }


def test_attempt_dict(attempt: Optional[TestAttempt]) -> Optional[Dict[str, Any]]:
    if attempt is None:
        return None
    return {
        "id": attempt.id,
        "test_id": attempt.test_id,
        "attempt_number": attempt.attempt_number,
        "answers": attempt.answers,
        "score": attempt.score,
        "is_passed": attempt.is_passed,
        "time_spent": attempt.time_spent,
        "completed_at": attempt.completed_at,
    }


def game_attempt_dict(attempt: Optional[GameAttempt]) -> Optional[Dict[str, Any]]:
    if attempt is None:
        return None
    return {
        "id": attempt.id,
        "game_id": attempt.game_id,
        "attempt_number": attempt.attempt_number,
        "score": attempt.score,
        "level": attempt.level,
        "is_passed": attempt.is_passed,
        "time_spent": attempt.time_spent,
        "data": attempt.data,
        "completed_at": attempt.completed_at,
    }


def writing_attempt_dict(attempt: WritingAttempt) -> Dict[str, Any]:
    return {
        "id": attempt.id,
        "target_word": attempt.target_word,
        "detected_text": attempt.detected_text,
        "is_correct": attempt.is_correct,
        "confidence": attempt.confidence,
        "explanation": attempt.explanation,
        "method": attempt.method,
        "image_url": attempt.image_url,
        "image_data": attempt.image_data,
        "created_at": attempt.created_at,
    }


def notification_dict(notification: Notification) -> Dict[str, Any]:
    return {
        "id": notification.id,
        "title": notification.title,
        "message": notification.message,
        "type": notification.type,
        "is_read": notification.is_read,
        "created_at": notification.created_at,
    }


def _test_summary_dict(summary: Optional[TestSummary]) -> Optional[Dict[str, Any]]:
    if summary is None:
        return None
    return {
        **test_dict(summary.test),
        "completed": summary.completed,
        "attempts": [test_attempt_dict(a) for a in summary.attempts],
    }


def lesson_view_dict(view: LessonView) -> Dict[str, Any]:
    return {
        **lesson_dict(view.lesson),
        "status": view.status,
        "can_access": view.can_access,
        "is_chapter_head": view.is_chapter_head,
        "progress": progress_dict(view.progress),
        "pre_test": _test_summary_dict(view.pre_test),
        "post_test": _test_summary_dict(view.post_test),
        "games": [
            {
                **game_dict(summary.game),
                "passed": summary.passed,
                "attempts": [game_attempt_dict(a) for a in summary.attempts],
            }
            for summary in view.games
        ],
    }


def student_progress_dict(progress: Dict[str, List[Dict[str, Any]]]) -> Dict[str, Any]:
    return {
        "lessons": [
            {**progress_dict(row["progress"]), "lesson": lesson_dict(row["lesson"])}
            for row in progress["lessons"]
        ],
        "tests": [
            {
                **test_attempt_dict(row["attempt"]),
                "test": test_dict(row["test"]),
                "lesson": lesson_dict(row["lesson"]),
            }
            for row in progress["tests"]
        ],
        "games": [
            {
                **game_attempt_dict(row["attempt"]),
                "game": game_dict(row["game"]),
                "lesson": lesson_dict(row["lesson"]),
            }
            for row in progress["games"]
        ],
    }
