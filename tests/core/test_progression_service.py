"""
Tests for the lesson progression state machine
"""

import itertools
import pytest
from unittest.mock import patch

from thai_literacy.core.exceptions import (
    DatabaseError,
    LessonNotFoundError,
    NotFoundError,
    StudentNotFoundError,
)
from thai_literacy.core.models import LessonStatus, NotificationType, TestType
from thai_literacy.core.services.grading_service import GradingService
from thai_literacy.core.services.progression_service import (
    GameSummary,
    ProgressionService,
    TestSummary,
    resolve_lesson_status,
)


@pytest.fixture
def progression(db_service):
    return ProgressionService(db_service)


@pytest.fixture
def grading(db_service):
    return GradingService(db_service, game_passing_score=60)


def _states(progression, student, classroom):
    return {
        view.lesson.order_index: view
        for view in progression.compute_lesson_states(student.id, classroom.id)
    }


def _add_test(db_service, lesson, test_type, passing_score=60):
    return db_service.create_test(
        lesson.id,
        f"{test_type.value} {lesson.title}",
        test_type,
        passing_score=passing_score,
        questions=[{"question": "ข้อใดคือ ก", "options": ["ก", "ข"], "correct_answer": 0}],
    )


class TestResolveLessonStatus:
    """Pure state resolution"""

    def test_chapter_head_is_never_locked(self):
        done = TestSummary(test=None, attempts=[object()])
        pending = TestSummary(test=None, attempts=[])
        for completed, pre, post in itertools.product(
            (True, False), (None, done, pending), (None, done, pending)
        ):
            status = resolve_lesson_status(
                unlocked_by_order=True,
                chapter_head=True,
                lesson_completed=completed,
                pre_test=pre,
                post_test=post,
            )
            assert status != LessonStatus.LOCKED

    def test_locked_by_order_ignores_own_pre_test(self):
        done = TestSummary(test=None, attempts=[object()])
        status = resolve_lesson_status(
            unlocked_by_order=False, chapter_head=False, lesson_completed=False, pre_test=done
        )
        assert status == LessonStatus.LOCKED

    def test_pending_pre_test_locks_non_head(self):
        pending = TestSummary(test=None, attempts=[])
        status = resolve_lesson_status(
            unlocked_by_order=True, chapter_head=False, lesson_completed=False, pre_test=pending
        )
        assert status == LessonStatus.LOCKED

    def test_games_ready_requires_unpassed_game(self):
        class _Attempt:
            def __init__(self, is_passed):
                self.is_passed = is_passed

        failed = GameSummary(game=None, attempts=[_Attempt(False)])
        passed = GameSummary(game=None, attempts=[_Attempt(False), _Attempt(True)])

        assert (
            resolve_lesson_status(True, True, True, games=[failed, passed])
            == LessonStatus.GAMES_READY
        )
        assert resolve_lesson_status(True, True, True, games=[passed]) == LessonStatus.COMPLETED
        assert resolve_lesson_status(True, True, True, games=[]) == LessonStatus.COMPLETED


class TestComputeLessonStates:
    """State computation against the database"""

    def test_first_lesson_without_progress_is_unlocked(
        self, progression, student, classroom, make_lesson
    ):
        make_lesson(1)

        views = progression.compute_lesson_states(student.id, classroom.id)

        assert len(views) == 1
        assert views[0].status == LessonStatus.UNLOCKED
        assert views[0].can_access is True
        assert views[0].is_chapter_head is True

    def test_successor_locked_until_predecessor_completed(
        self, progression, grading, db_service, student, classroom, make_lesson
    ):
        make_lesson(1)
        second = make_lesson(2)
        pre_test = _add_test(db_service, second, TestType.PRE_TEST)

        # Taking the pre-test early does not bypass the order gate
        grading.submit_test(student.id, pre_test.id, {})
        states = _states(progression, student, classroom)
        assert states[2].status == LessonStatus.LOCKED
        assert states[2].can_access is False

    def test_pre_test_gate_after_predecessor(
        self, progression, grading, db_service, student, classroom, make_lesson
    ):
        first = make_lesson(1)
        second = make_lesson(2)
        pre_test = _add_test(db_service, second, TestType.PRE_TEST)

        progression.complete_lesson(student.id, first.id)
        assert _states(progression, student, classroom)[2].status == LessonStatus.LOCKED

        grading.submit_test(student.id, pre_test.id, {})
        assert _states(progression, student, classroom)[2].status == LessonStatus.UNLOCKED

    def test_lesson_without_pre_test_unlocks_after_predecessor(
        self, progression, student, classroom, make_lesson
    ):
        first = make_lesson(1)
        make_lesson(2)

        progression.complete_lesson(student.id, first.id)

        states = _states(progression, student, classroom)
        assert states[1].status == LessonStatus.COMPLETED
        assert states[2].status == LessonStatus.UNLOCKED

    def test_chapter_head_ignores_other_chapters(
        self, progression, db_service, student, classroom, make_lesson
    ):
        make_lesson(1, chapter="บทที่ 1")
        make_lesson(2, chapter="บทที่ 1")
        head = make_lesson(3, chapter="บทที่ 2")
        _add_test(db_service, head, TestType.PRE_TEST)

        states = _states(progression, student, classroom)

        assert states[2].status == LessonStatus.LOCKED
        assert states[3].is_chapter_head is True
        assert states[3].status == LessonStatus.UNLOCKED

    def test_post_test_ready_then_completed(
        self, progression, grading, db_service, student, classroom, make_lesson
    ):
        lesson = make_lesson(1)
        post_test = _add_test(db_service, lesson, TestType.POST_TEST)

        progression.complete_lesson(student.id, lesson.id)
        assert _states(progression, student, classroom)[1].status == LessonStatus.POST_TEST_READY

        grading.submit_test(student.id, post_test.id, {})
        assert _states(progression, student, classroom)[1].status == LessonStatus.COMPLETED

    def test_games_ready_until_every_game_passed(
        self, progression, grading, db_service, student, classroom, make_lesson
    ):
        lesson = make_lesson(1)
        match_game = db_service.create_game(lesson.id, "จับคู่", "matching")
        spell_game = db_service.create_game(lesson.id, "สะกดคำ", "spelling")

        progression.complete_lesson(student.id, lesson.id)
        assert _states(progression, student, classroom)[1].status == LessonStatus.GAMES_READY

        grading.submit_game(student.id, match_game.id, 100)
        grading.submit_game(student.id, spell_game.id, 40)
        view = _states(progression, student, classroom)[1]
        assert view.status == LessonStatus.GAMES_READY
        assert {g.game.title: g.passed for g in view.games} == {"จับคู่": True, "สะกดคำ": False}

        grading.submit_game(student.id, spell_game.id, 70)
        assert _states(progression, student, classroom)[1].status == LessonStatus.COMPLETED

    def test_inactive_lessons_are_hidden(self, progression, student, classroom, make_lesson):
        make_lesson(1)
        make_lesson(2, is_active=False)

        views = progression.compute_lesson_states(student.id, classroom.id)

        assert [v.lesson.order_index for v in views] == [1]

    def test_accepts_any_id_spelling(self, progression, student, classroom, make_lesson):
        make_lesson(1)
        hyphenated = (
            f"{student.id[:8]}-{student.id[8:12]}-{student.id[12:16]}-"
            f"{student.id[16:20]}-{student.id[20:]}"
        ).upper()

        views = progression.compute_lesson_states(hyphenated, {"_id": classroom.id})

        assert views[0].status == LessonStatus.UNLOCKED

    def test_unknown_student_and_classroom(self, progression, student, classroom):
        with pytest.raises(StudentNotFoundError):
            progression.compute_lesson_states("not-an-id", classroom.id)
        with pytest.raises(NotFoundError):
            progression.compute_lesson_states(student.id, "0" * 32)


class TestCompleteLesson:
    """Completion writes and notifications"""

    def test_notifies_completion_and_next_lesson(
        self, progression, db_service, student, make_lesson
    ):
        first = make_lesson(1, title="พยัญชนะ ก-ง")
        make_lesson(2, title="พยัญชนะ จ-ญ")

        progress = progression.complete_lesson(student.id, first.id)

        assert progress.is_completed is True
        assert progress.completed_at is not None
        notifications = db_service.list_notifications(student.id)
        by_type = {n.type: n for n in notifications}
        assert len(notifications) == 2
        assert "พยัญชนะ ก-ง" in by_type[NotificationType.SUCCESS].message
        assert "พยัญชนะ จ-ญ" in by_type[NotificationType.INFO].message

    def test_last_lesson_only_notifies_completion(
        self, progression, db_service, student, make_lesson
    ):
        lesson = make_lesson(1)

        progression.complete_lesson(student.id, lesson.id)

        notifications = db_service.list_notifications(student.id)
        assert [n.type for n in notifications] == [NotificationType.SUCCESS]

    def test_is_idempotent(self, progression, db_service, student, make_lesson):
        lesson = make_lesson(1)

        progression.complete_lesson(student.id, lesson.id)
        progression.complete_lesson(student.id, lesson.id)

        assert len(db_service.list_lesson_progress(student.id)) == 1
        assert len(db_service.list_notifications(student.id)) == 1

    def test_missing_lesson(self, progression, student):
        with pytest.raises(LessonNotFoundError):
            progression.complete_lesson(student.id, "f" * 32)

    def test_notification_failure_keeps_progress(
        self, progression, db_service, student, make_lesson
    ):
        lesson = make_lesson(1)

        with patch.object(
            db_service, "create_notification", side_effect=DatabaseError("disk full")
        ):
            progress = progression.complete_lesson(student.id, lesson.id)

        assert progress.is_completed is True
        assert db_service.get_lesson_progress(student.id, lesson.id).is_completed is True


class TestLessonStatusQueries:
    """Pre/post test status and activities"""

    def test_pre_test_status(self, progression, grading, db_service, student, make_lesson):
        plain = make_lesson(1)
        gated = make_lesson(2)
        pre_test = _add_test(db_service, gated, TestType.PRE_TEST)

        assert progression.get_pre_test_status(student.id, plain.id) == {
            "has_pre_test": False,
            "is_pre_test_completed": True,
            "can_access_lesson": True,
        }

        status = progression.get_pre_test_status(student.id, gated.id)
        assert status["has_pre_test"] is True
        assert status["can_access_lesson"] is False
        assert status["pre_test_id"] == pre_test.id

        grading.submit_test(student.id, pre_test.id, {})
        assert progression.get_pre_test_status(student.id, gated.id)["can_access_lesson"] is True

    def test_post_test_status(self, progression, grading, db_service, student, make_lesson):
        lesson = make_lesson(1)
        post_test = _add_test(db_service, lesson, TestType.POST_TEST)

        status = progression.get_post_test_status(student.id, lesson.id)
        assert status["is_post_test_unlocked"] is False
        assert status["is_post_test_completed"] is False

        progression.complete_lesson(student.id, lesson.id)
        grading.submit_test(student.id, post_test.id, {})

        status = progression.get_post_test_status(student.id, lesson.id)
        assert status["is_post_test_unlocked"] is True
        assert status["is_post_test_completed"] is True
        assert status["post_test_title"] == post_test.title

    def test_submit_activity_replaces_and_accumulates(
        self, progression, student, make_lesson
    ):
        lesson = make_lesson(1)

        progression.submit_activity(student.id, lesson.id, "drag-1", "ก", False, time_spent=30)
        progression.submit_activity(student.id, lesson.id, "drag-2", "ข", True, time_spent=15)
        progress = progression.submit_activity(
            student.id, lesson.id, "drag-1", "ก", True, time_spent=20
        )

        assert progress.is_completed is False
        assert progress.time_spent == 65
        results = {r["activity_id"]: r for r in progress.activity_results}
        assert len(progress.activity_results) == 2
        assert results["drag-1"]["is_correct"] is True
        assert results["drag-1"]["score"] == 100
        assert results["drag-2"]["score"] == 100

    def test_submit_activity_missing_lesson(self, progression, student):
        with pytest.raises(LessonNotFoundError):
            progression.submit_activity(student.id, "a" * 32, "x", None, False)

    def test_student_progress_joins_summaries(
        self, progression, grading, db_service, student, make_lesson
    ):
        lesson = make_lesson(1, title="สระ อา")
        test = _add_test(db_service, lesson, TestType.POST_TEST)
        game = db_service.create_game(lesson.id, "จับคู่", "matching")

        progression.complete_lesson(student.id, lesson.id)
        grading.submit_test(student.id, test.id, {})
        grading.submit_game(student.id, game.id, 80)

        progress = progression.get_student_progress(student.id)

        assert progress["lessons"][0]["lesson"].title == "สระ อา"
        assert progress["tests"][0]["test"].id == test.id
        assert progress["tests"][0]["lesson"].id == lesson.id
        assert progress["games"][0]["game"].id == game.id
        assert progress["games"][0]["attempt"].score == 80
