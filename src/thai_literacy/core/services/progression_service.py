"""
Progression Service
Per-student lesson state machine: pre-test -> lesson -> post-test -> games.

Unlocking is chapter-relative. A lesson is gated only by the lesson with
``order_index - 1`` in the same chapter; the first lesson of a chapter is
always reachable.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .database import DatabaseService, get_db_service
from .logging import get_logging_service
from .notification_service import NotificationService
from ..exceptions import LessonNotFoundError, NotFoundError, StudentNotFoundError
from ..models import (
    Game,
    GameAttempt,
    IdLike,
    Lesson,
    LessonProgress,
    LessonStatus,
    NotificationType,
    Test,
    TestAttempt,
    TestType,
)


@dataclass
class TestSummary:
    """A test together with this student's attempts (newest first)"""

    __test__ = False

    test: Test
    attempts: List[TestAttempt] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return len(self.attempts) > 0


@dataclass
class GameSummary:
    """A game together with this student's attempts (newest first)"""

    game: Game
    attempts: List[GameAttempt] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return any(attempt.is_passed for attempt in self.attempts)


@dataclass
class LessonView:
    """Lesson as seen by one student"""

    lesson: Lesson
    status: LessonStatus
    is_chapter_head: bool
    progress: Optional[LessonProgress] = None
    pre_test: Optional[TestSummary] = None
    post_test: Optional[TestSummary] = None
    games: List[GameSummary] = field(default_factory=list)

    @property
    def can_access(self) -> bool:
        return self.status == LessonStatus.UNLOCKED

    @property
    def is_completed(self) -> bool:
        return bool(self.progress and self.progress.is_completed)


def is_chapter_head(lesson: Lesson, lessons: Iterable[Lesson]) -> bool:
    """First lesson overall, or no same-chapter lesson directly before it"""
    if lesson.order_index == 1:
        return True
    return find_previous_in_chapter(lesson, lessons) is None


def find_previous_in_chapter(lesson: Lesson, lessons: Iterable[Lesson]) -> Optional[Lesson]:
    for other in lessons:
        if other.order_index == lesson.order_index - 1 and other.chapter == lesson.chapter:
            return other
    return None


def resolve_lesson_status(
    unlocked_by_order: bool,
    chapter_head: bool,
    lesson_completed: bool,
    pre_test: Optional[TestSummary] = None,
    post_test: Optional[TestSummary] = None,
    games: Iterable[GameSummary] = (),
) -> LessonStatus:
    """
    Resolve the state of one lesson.

    A missing pre-test counts as passed and a lesson without games skips the
    games stage.
    """
    if not unlocked_by_order:
        return LessonStatus.LOCKED
    if not chapter_head and pre_test is not None and not pre_test.completed:
        return LessonStatus.LOCKED
    if not lesson_completed:
        return LessonStatus.UNLOCKED
    if post_test is not None and not post_test.completed:
        return LessonStatus.POST_TEST_READY
    games = list(games)
    if games and not all(game.passed for game in games):
        return LessonStatus.GAMES_READY
    return LessonStatus.COMPLETED


class ProgressionService:
    """Service computing and advancing lesson progression"""

    def __init__(
        self,
        db: Optional[DatabaseService] = None,
        notifications: Optional[NotificationService] = None,
    ):
        self.db = db or get_db_service()
        self.notifications = notifications or NotificationService(self.db)
        self.logging_service = get_logging_service()
        self.logger = self.logging_service.get_logger("progression")

    def _require_student(self, student_id: IdLike):
        student = self.db.get_student(student_id)
        if not student:
            raise StudentNotFoundError(f"Student {student_id} not found")
        return student

    def _require_lesson(self, lesson_id: IdLike) -> Lesson:
        lesson = self.db.get_lesson(lesson_id)
        if not lesson:
            raise LessonNotFoundError(f"Lesson {lesson_id} not found")
        return lesson

    def compute_lesson_states(
        self, student_id: IdLike, classroom_id: IdLike
    ) -> List[LessonView]:
        """
        Compute the state of every active lesson of a classroom for a student.

        Args:
            student_id: Student the states are computed for
            classroom_id: Classroom whose lessons are listed

        Returns:
            One LessonView per active lesson, ordered by order_index
        """
        start = time.perf_counter()
        student = self._require_student(student_id)
        if not self.db.get_classroom(classroom_id):
            raise NotFoundError(
                f"Classroom {classroom_id} not found", user_message="ไม่พบห้องเรียน"
            )

        lessons = self.db.list_active_lessons(classroom_id)
        if not lessons:
            return []
        lesson_ids = [lesson.id for lesson in lessons]

        tests = self.db.list_tests(lesson_ids=lesson_ids)
        games = self.db.list_games(lesson_ids=lesson_ids)
        progress_by_lesson = {
            p.lesson_id: p for p in self.db.list_lesson_progress(student.id)
        }

        test_attempts: Dict[str, List[TestAttempt]] = {}
        if tests:
            for attempt in self.db.list_test_attempts(student.id, [t.id for t in tests]):
                test_attempts.setdefault(attempt.test_id, []).append(attempt)
        game_attempts: Dict[str, List[GameAttempt]] = {}
        if games:
            for attempt in self.db.list_game_attempts(student.id, [g.id for g in games]):
                game_attempts.setdefault(attempt.game_id, []).append(attempt)

        # First active test of each type per lesson
        pre_tests: Dict[str, TestSummary] = {}
        post_tests: Dict[str, TestSummary] = {}
        for test in tests:
            target = pre_tests if test.type == TestType.PRE_TEST else post_tests
            if test.lesson_id not in target:
                target[test.lesson_id] = TestSummary(test, test_attempts.get(test.id, []))

        games_by_lesson: Dict[str, List[GameSummary]] = {}
        for game in games:
            games_by_lesson.setdefault(game.lesson_id, []).append(
                GameSummary(game, game_attempts.get(game.id, []))
            )

        views = []
        for lesson in lessons:
            chapter_head = is_chapter_head(lesson, lessons)
            if chapter_head:
                unlocked_by_order = True
            else:
                previous = find_previous_in_chapter(lesson, lessons)
                previous_progress = progress_by_lesson.get(previous.id)
                unlocked_by_order = bool(previous_progress and previous_progress.is_completed)

            progress = progress_by_lesson.get(lesson.id)
            view = LessonView(
                lesson=lesson,
                status=LessonStatus.LOCKED,
                is_chapter_head=chapter_head,
                progress=progress,
                pre_test=pre_tests.get(lesson.id),
                post_test=post_tests.get(lesson.id),
                games=games_by_lesson.get(lesson.id, []),
            )
            view.status = resolve_lesson_status(
                unlocked_by_order,
                chapter_head,
                view.is_completed,
                view.pre_test,
                view.post_test,
                view.games,
            )
            views.append(view)

        self.logging_service.log_performance(
            "compute_lesson_states",
            int((time.perf_counter() - start) * 1000),
            student_id=student.id,
            lessons=len(views),
        )
        return views

    def complete_lesson(self, student_id: IdLike, lesson_id: IdLike) -> LessonProgress:
        """
        Mark a lesson as completed.

        Completion notifications are sent only on the first completion; the
        next lesson's state is picked up by the next compute_lesson_states call.
        """
        student = self._require_student(student_id)
        lesson = self._require_lesson(lesson_id)

        previous = self.db.get_lesson_progress(student.id, lesson.id)
        already_completed = bool(previous and previous.is_completed)

        progress = self.db.upsert_lesson_progress(
            student.id, lesson.id, is_completed=True, completed_at=datetime.now()
        )
        if already_completed:
            return progress

        self.notifications.create(
            student.id,
            "🎯 เรียนจบบทเรียนแล้ว!",
            f'คุณเรียนจบ "{lesson.title}" แล้ว! ทำแบบทดสอบเพื่อทดสอบความรู้ของคุณ',
            NotificationType.SUCCESS,
        )

        next_lesson = self._next_lesson(lesson)
        if next_lesson:
            self.notifications.create(
                student.id,
                "🔓 บทเรียนใหม่ปลดล็อกแล้ว!",
                f'บทเรียน "{next_lesson.title}" พร้อมสำหรับคุณแล้ว!',
                NotificationType.INFO,
            )

        self.logging_service.log_lesson_progress(
            "completed",
            student.id,
            lesson.id,
            next_lesson_id=next_lesson.id if next_lesson else None,
        )
        return progress

    def _next_lesson(self, lesson: Lesson) -> Optional[Lesson]:
        for candidate in self.db.list_active_lessons(lesson.classroom_id):
            if candidate.order_index > lesson.order_index:
                return candidate
        return None

    def get_pre_test_status(self, student_id: IdLike, lesson_id: IdLike) -> Dict[str, Any]:
        """Whether the lesson's pre-test gate is satisfied"""
        student = self._require_student(student_id)
        lesson = self._require_lesson(lesson_id)

        pre_test = self.db.find_lesson_test(lesson.id, TestType.PRE_TEST)
        if not pre_test:
            return {
                "has_pre_test": False,
                "is_pre_test_completed": True,
                "can_access_lesson": True,
            }

        completed = bool(self.db.list_test_attempts(student.id, [pre_test.id]))
        return {
            "has_pre_test": True,
            "is_pre_test_completed": completed,
            "can_access_lesson": completed,
            "pre_test_id": pre_test.id,
            "pre_test_title": pre_test.title,
        }

    def get_post_test_status(self, student_id: IdLike, lesson_id: IdLike) -> Dict[str, Any]:
        """Post-test availability; it unlocks once the lesson is completed"""
        student = self._require_student(student_id)
        lesson = self._require_lesson(lesson_id)

        progress = self.db.get_lesson_progress(student.id, lesson.id)
        lesson_completed = bool(progress and progress.is_completed)

        post_test = self.db.find_lesson_test(lesson.id, TestType.POST_TEST)
        if not post_test:
            return {
                "has_post_test": False,
                "is_post_test_unlocked": lesson_completed,
                "is_post_test_completed": False,
            }

        completed = bool(self.db.list_test_attempts(student.id, [post_test.id]))
        return {
            "has_post_test": True,
            "is_post_test_unlocked": lesson_completed,
            "is_post_test_completed": completed,
            "post_test_id": post_test.id,
            "post_test_title": post_test.title,
        }

    def submit_activity(
        self,
        student_id: IdLike,
        lesson_id: IdLike,
        activity_id: str,
        answer: Any,
        is_correct: bool,
        score: Optional[int] = None,
        time_spent: Optional[int] = None,
    ) -> LessonProgress:
        """Record an in-lesson activity result, replacing an earlier one"""
        student = self._require_student(student_id)
        lesson = self._require_lesson(lesson_id)

        progress = self.db.get_lesson_progress(student.id, lesson.id)
        results = [
            result
            for result in (progress.activity_results if progress else None) or []
            if result.get("activity_id") != activity_id
        ]
        results.append(
            {
                "activity_id": activity_id,
                "answer": answer,
                "is_correct": bool(is_correct),
                "score": score if score is not None else (100 if is_correct else 0),
                "time_spent": time_spent or 0,
                "submitted_at": datetime.now().isoformat(),
            }
        )
        total_time = (progress.time_spent if progress else 0) + (time_spent or 0)

        return self.db.upsert_lesson_progress(
            student.id, lesson.id, activity_results=results, time_spent=total_time
        )

    def get_student_progress(self, student_id: IdLike) -> Dict[str, List[Dict[str, Any]]]:
        """
        Full progress history of a student.

        Returns:
            Dict with ``lessons`` (progress + lesson), ``tests`` (attempt + test
            + lesson) and ``games`` (attempt + game + lesson), attempts newest first
        """
        student = self._require_student(student_id)

        progress_rows = self.db.list_lesson_progress(student.id)
        test_attempts = self.db.list_test_attempts(student.id)
        game_attempts = self.db.list_game_attempts(student.id)

        tests = self.db.get_tests_by_ids(a.test_id for a in test_attempts)
        games = self.db.get_games_by_ids(a.game_id for a in game_attempts)
        lessons = self.db.get_lessons_by_ids(
            [p.lesson_id for p in progress_rows]
            + [t.lesson_id for t in tests.values()]
            + [g.lesson_id for g in games.values()]
        )

        def lesson_of(row) -> Optional[Lesson]:
            return lessons.get(row.lesson_id) if row else None

        return {
            "lessons": [
                {"progress": p, "lesson": lessons.get(p.lesson_id)} for p in progress_rows
            ],
            "tests": [
                {
                    "attempt": a,
                    "test": tests.get(a.test_id),
                    "lesson": lesson_of(tests.get(a.test_id)),
                }
                for a in test_attempts
            ],
            "games": [
                {
                    "attempt": a,
                    "game": games.get(a.game_id),
                    "lesson": lesson_of(games.get(a.game_id)),
                }
                for a in game_attempts
            ],
        }


def get_progression_service() -> ProgressionService:
    """Progression service bound to the global database"""
    return ProgressionService()
