"""
Grading Service
Scores test submissions and game plays, numbers attempts per student and
emits achievement notifications.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .database import DatabaseService, get_db_service
from .logging import get_logging_service
from .notification_service import NotificationService
from .settings_config_service import get_settings_service
from ..exceptions import (
    GameNotFoundError,
    InvalidAnswersError,
    StudentNotFoundError,
    TestNotFoundError,
    ValidationError,
)
from ..models import (
    GameAttempt,
    IdLike,
    NotificationType,
    Question,
    TestAttempt,
    TestType,
    try_normalize_id,
)

# (minimum score, stars), checked top down
STAR_THRESHOLDS = ((90, 3), (80, 2), (60, 1))


@dataclass
class AttemptResult:
    """Graded test attempt"""

    attempt: TestAttempt
    correct_answers: int
    total_questions: int
    stars: int

    @property
    def score(self) -> int:
        return self.attempt.score

    @property
    def is_passed(self) -> bool:
        return self.attempt.is_passed


@dataclass
class GameResult:
    """Recorded game play"""

    attempt: GameAttempt

    @property
    def score(self) -> int:
        return self.attempt.score

    @property
    def is_passed(self) -> bool:
        return self.attempt.is_passed


def round_half_up(numerator: int, denominator: int) -> int:
    """Percentage of numerator/denominator, halves rounded up"""
    if denominator <= 0:
        return 0
    return (numerator * 200 + denominator) // (2 * denominator)


def stars_for_score(score: int) -> int:
    for threshold, stars in STAR_THRESHOLDS:
        if score >= threshold:
            return stars
    return 0


def _is_index(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def is_answer_correct(submitted: Any, expected: Any) -> bool:
    """
    Exact comparison of one answer.

    A multi-select answer must name exactly the expected indices; the order
    does not matter but repeated indices make it wrong.
    """
    if isinstance(expected, list):
        if not isinstance(submitted, (list, tuple)):
            return False
        if not all(_is_index(v) for v in submitted):
            return False
        return sorted(submitted) == sorted(expected)
    return _is_index(submitted) and submitted == expected


def normalize_answers(answers: Any) -> Dict[str, Any]:
    """Key a submission by canonical question id"""
    if not isinstance(answers, Mapping):
        raise InvalidAnswersError(
            f"answers must be a mapping of question id to answer, got {type(answers).__name__}"
        )
    normalized = {}
    for key, value in answers.items():
        normalized[try_normalize_id(key) or str(key)] = value
    return normalized


def _valid_filters(classroom_id: IdLike, lesson_id: Optional[IdLike]) -> bool:
    # Malformed ids cannot match any row
    if try_normalize_id(classroom_id) is None:
        return False
    return lesson_id is None or try_normalize_id(lesson_id) is not None


def grade_answers(questions: Iterable[Question], answers: Dict[str, Any]) -> int:
    """Number of correctly answered questions"""
    return sum(
        1
        for question in questions
        if is_answer_correct(answers.get(question.id), question.correct_answer)
    )


class GradingService:
    """Service for grading tests and recording games"""

    def __init__(
        self,
        db: Optional[DatabaseService] = None,
        notifications: Optional[NotificationService] = None,
        game_passing_score: Optional[int] = None,
    ):
        self.db = db or get_db_service()
        self.notifications = notifications or NotificationService(self.db)
        if game_passing_score is None:
            game_passing_score = get_settings_service().get_grading_defaults()[
                "game_passing_score"
            ]
        self.game_passing_score = game_passing_score
        self.logging_service = get_logging_service()
        self.logger = self.logging_service.get_logger("grading")

    def _require_student(self, student_id: IdLike):
        student = self.db.get_student(student_id)
        if not student:
            raise StudentNotFoundError(f"Student {student_id} not found")
        return student

    def submit_test(
        self,
        student_id: IdLike,
        test_id: IdLike,
        answers: Any,
        time_spent: int = 0,
    ) -> AttemptResult:
        """
        Grade a test submission and record the attempt.

        Args:
            student_id: Submitting student
            test_id: Test being answered
            answers: Mapping of question id to option index (or list of indices)
            time_spent: Seconds spent on the test

        Returns:
            AttemptResult with the stored attempt and the grading breakdown

        Raises:
            InvalidAnswersError: If answers is not a mapping
            TestNotFoundError: If the test does not exist
        """
        normalized = normalize_answers(answers)
        student = self._require_student(student_id)

        # The whole answer key is loaded before grading starts
        test = self.db.get_test_with_questions(test_id)
        if not test:
            raise TestNotFoundError(f"Test {test_id} not found")
        questions = list(test.questions)

        correct = grade_answers(questions, normalized)
        total = len(questions)
        score = round_half_up(correct, total)
        is_passed = score >= test.passing_score

        attempt_number = self.db.get_last_test_attempt_number(student.id, test.id) + 1
        attempt = self.db.create_test_attempt(
            {
                "student_id": student.id,
                "test_id": test.id,
                "attempt_number": attempt_number,
                "answers": normalized,
                "score": score,
                "is_passed": is_passed,
                "time_spent": max(int(time_spent or 0), 0),
                "completed_at": datetime.now(),
            }
        )
        self.logging_service.log_attempt(
            "test",
            student.id,
            test.id,
            attempt_number,
            score,
            is_passed,
            correct_answers=correct,
            total_questions=total,
        )

        stars = stars_for_score(score) if is_passed else 0
        if is_passed:
            self.notifications.create(
                student.id,
                "🎉 ยินดีด้วย! คุณผ่านแบบทดสอบแล้ว",
                f'คุณทำคะแนนได้ {score}% ในแบบทดสอบ "{test.title}"',
                NotificationType.SUCCESS,
            )
            if stars:
                self.notifications.create(
                    student.id,
                    f"⭐ ได้รับ {stars} ดาว!",
                    f'คุณได้รับ {stars} ดาวจากแบบทดสอบ "{test.title}"',
                    NotificationType.SUCCESS,
                )

        return AttemptResult(
            attempt=attempt, correct_answers=correct, total_questions=total, stars=stars
        )

    def submit_game(
        self,
        student_id: IdLike,
        game_id: IdLike,
        score: int,
        level: int = 1,
        time_spent: int = 0,
        data: Optional[Dict[str, Any]] = None,
    ) -> GameResult:
        """Record a game play; a perfect score earns the gold medal"""
        if not _is_index(score) or not 0 <= score <= 100:
            raise ValidationError(
                f"Game score must be an integer between 0 and 100, got {score!r}",
                user_message="คะแนนเกมไม่ถูกต้อง",
            )
        student = self._require_student(student_id)
        game = self.db.get_game(game_id)
        if not game:
            raise GameNotFoundError(f"Game {game_id} not found")

        is_passed = score >= self.game_passing_score
        attempt_number = self.db.get_last_game_attempt_number(student.id, game.id) + 1
        attempt = self.db.create_game_attempt(
            {
                "student_id": student.id,
                "game_id": game.id,
                "attempt_number": attempt_number,
                "score": score,
                "level": level or 1,
                "is_passed": is_passed,
                "time_spent": max(int(time_spent or 0), 0),
                "data": data,
                "completed_at": datetime.now(),
            }
        )
        self.logging_service.log_attempt(
            "game", student.id, game.id, attempt_number, score, is_passed, game_level=level or 1
        )

        if score == 100:
            self.notifications.create(
                student.id,
                "🥇 ได้เหรียญทอง!",
                f'คุณเล่นเกม "{game.title}" ได้คะแนน 100%!',
                NotificationType.SUCCESS,
            )
        elif is_passed:
            self.notifications.create(
                student.id,
                "🎮 ผ่านเกมแล้ว!",
                f'คุณเล่นเกม "{game.title}" ได้คะแนน {score}%',
                NotificationType.SUCCESS,
            )

        return GameResult(attempt=attempt)

    def get_student_tests(
        self,
        student_id: IdLike,
        classroom_id: IdLike,
        lesson_id: Optional[IdLike] = None,
        test_type: Optional[TestType] = None,
    ) -> List[Dict[str, Any]]:
        """Active tests of a classroom with questions, lesson and own attempts"""
        student = self._require_student(student_id)
        if not _valid_filters(classroom_id, lesson_id):
            return []
        tests = self.db.list_tests(
            classroom_id=classroom_id,
            lesson_ids=[lesson_id] if lesson_id is not None else None,
            test_type=test_type,
            with_questions=True,
        )
        lessons = self.db.get_lessons_by_ids(t.lesson_id for t in tests)
        attempts: Dict[str, List[TestAttempt]] = {}
        if tests:
            for attempt in self.db.list_test_attempts(student.id, [t.id for t in tests]):
                attempts.setdefault(attempt.test_id, []).append(attempt)

        results = []
        for test in tests:
            own = attempts.get(test.id, [])
            results.append(
                {
                    "test": test,
                    "questions": list(test.questions),
                    "lesson": lessons.get(test.lesson_id),
                    "attempts": own,
                    "attempted": bool(own),
                    "last_attempt": own[0] if own else None,
                }
            )
        return results

    def get_student_games(
        self,
        student_id: IdLike,
        classroom_id: IdLike,
        lesson_id: Optional[IdLike] = None,
        game_type: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Active games of a classroom with lesson and own attempts"""
        student = self._require_student(student_id)
        if not _valid_filters(classroom_id, lesson_id):
            return []
        games = self.db.list_games(
            classroom_id=classroom_id,
            lesson_ids=[lesson_id] if lesson_id is not None else None,
            game_type=game_type,
        )
        lessons = self.db.get_lessons_by_ids(g.lesson_id for g in games)
        attempts: Dict[str, List[GameAttempt]] = {}
        if games:
            for attempt in self.db.list_game_attempts(student.id, [g.id for g in games]):
                attempts.setdefault(attempt.game_id, []).append(attempt)

        results = []
        for game in games:
            own = attempts.get(game.id, [])
            results.append(
                {
                    "game": game,
                    "lesson": lessons.get(game.lesson_id),
                    "attempts": own,
                    "attempted": bool(own),
                    "last_attempt": own[0] if own else None,
                }
            )
        return results


def get_grading_service() -> GradingService:
    """Grading service bound to the global database"""
    return GradingService()
