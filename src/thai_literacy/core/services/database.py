"""
Database service for the Thai literacy backend

This is the persistence collaborator used by every engine. All ids passed in
are normalized with ``normalize_id`` before they reach a query, so callers may
hand in whatever id representation they hold.
"""

import os
import sqlite3
import threading
import weakref
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple
from sqlalchemy import create_engine, event, select, func, and_
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session, selectinload

from ..exceptions import DatabaseError
from ..models import (
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
    NotificationType,
    TestType,
    IdLike,
    normalize_id,
    try_normalize_id,
)


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, connection_record):
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


class DatabaseService:
    """Database service for managing SQLite connections and sessions"""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize database service"""
        if db_path is None:
            from .settings_config_service import get_settings_service

            db_path = os.getenv("THAI_LMS_DB_PATH") or get_settings_service().get(
                "database", "path", "thai_literacy.db"
            )

        self.db_path = Path(db_path)
        self.engine: Optional[Engine] = None
        self.SessionLocal: Optional[sessionmaker[Session]] = None

        # Import logging service after initialization to avoid circular imports
        from .logging import get_logging_service

        self.logging_service = get_logging_service()
        self.logger = self.logging_service.get_logger("database")

        self._setup_engine()
        self._create_tables()

    def _setup_engine(self):
        """Set up SQLAlchemy engine"""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.engine = create_engine(
            f"sqlite:///{self.db_path}",
            echo=bool(os.getenv("THAI_LMS_DEV_MODE")),
            connect_args={"check_same_thread": False},
            pool_pre_ping=True,
        )

        # Ensure engine is disposed when DatabaseService is garbage collected
        weakref.finalize(self, self.engine.dispose)

        # Rows leave the session as read snapshots
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self.engine
        )

    def _create_tables(self):
        """Create all database tables"""
        if self.engine is None:
            raise RuntimeError("Database engine not initialized")
        Base.metadata.create_all(bind=self.engine)

    def get_session(self) -> Session:
        """Get a database session"""
        if self.SessionLocal is None:
            raise RuntimeError("Database session factory not initialized")
        return self.SessionLocal()

    def close(self):
        """Close database connections"""
        if self.engine:
            self.engine.dispose()

    def _commit(self, session: Session, entity: str, *rows) -> None:
        """Commit a primary write, converting driver failures into DatabaseError"""
        try:
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            self.logging_service.log_error("database_write", str(e), entity=entity)
            raise DatabaseError(f"Failed to write {entity}: {e}") from e
        for row in rows:
            session.refresh(row)

    def _add(self, row, entity: str):
        with self.get_session() as session:
            session.add(row)
            self._commit(session, entity, row)
            self.logging_service.log_crud_operation("create", entity, row.id)
            return row

    def _get(self, model, raw_id: IdLike):
        """Primary-key lookup; ids that cannot be normalized never match"""
        key = try_normalize_id(raw_id)
        if key is None:
            return None
        with self.get_session() as session:
            return session.get(model, key)

    def _delete(self, model, raw_id: IdLike, entity: str) -> bool:
        with self.get_session() as session:
            row = session.get(model, normalize_id(raw_id))
            if not row:
                return False
            session.delete(row)
            self._commit(session, entity)
            self.logging_service.log_crud_operation("delete", entity, row.id)
            return True

    # --- Classrooms & students ---

    def create_classroom(self, name: str, grade_level: Optional[str] = None) -> Classroom:
        return self._add(Classroom(name=name, grade_level=grade_level), "classroom")

    def get_classroom(self, classroom_id: IdLike) -> Optional[Classroom]:
        return self._get(Classroom, classroom_id)

    def delete_classroom(self, classroom_id: IdLike) -> bool:
        return self._delete(Classroom, classroom_id, "classroom")

    def create_student(
        self,
        first_name: str,
        last_name: str = "",
        classroom_id: Optional[IdLike] = None,
    ) -> Student:
        student = Student(
            first_name=first_name,
            last_name=last_name,
            classroom_id=normalize_id(classroom_id) if classroom_id else None,
        )
        return self._add(student, "student")

    def get_student(self, student_id: IdLike) -> Optional[Student]:
        return self._get(Student, student_id)

    def delete_student(self, student_id: IdLike) -> bool:
        return self._delete(Student, student_id, "student")

    # --- Lessons ---

    def create_lesson(
        self,
        classroom_id: IdLike,
        title: str,
        order_index: int,
        chapter: Optional[str] = None,
        content: Optional[str] = None,
        is_active: bool = True,
    ) -> Lesson:
        lesson = Lesson(
            classroom_id=normalize_id(classroom_id),
            title=title,
            order_index=order_index,
            chapter=chapter,
            content=content,
            is_active=is_active,
        )
        return self._add(lesson, "lesson")

    def get_lesson(self, lesson_id: IdLike) -> Optional[Lesson]:
        return self._get(Lesson, lesson_id)

    def get_lessons_by_ids(self, lesson_ids: Iterable[str]) -> Dict[str, Lesson]:
        ids = list({normalize_id(i) for i in lesson_ids})
        if not ids:
            return {}
        with self.get_session() as session:
            rows = session.execute(select(Lesson).where(Lesson.id.in_(ids))).scalars()
            return {row.id: row for row in rows}

    def list_active_lessons(self, classroom_id: IdLike) -> List[Lesson]:
        """Active lessons of a classroom ordered by order_index"""
        with self.get_session() as session:
            stmt = (
                select(Lesson)
                .where(
                    and_(
                        Lesson.classroom_id == normalize_id(classroom_id),
                        Lesson.is_active == True,  # noqa: E712
                    )
                )
                .order_by(Lesson.order_index)
            )
            return list(session.execute(stmt).scalars().all())

    def list_all_lessons(self) -> List[Lesson]:
        with self.get_session() as session:
            return list(session.execute(select(Lesson)).scalars().all())

    def update_lesson(self, lesson_id: IdLike, updates: Dict[str, Any]) -> Optional[Lesson]:
        with self.get_session() as session:
            lesson = session.get(Lesson, normalize_id(lesson_id))
            if not lesson:
                return None
            for key, value in updates.items():
                if hasattr(lesson, key) and key != "id":
                    setattr(lesson, key, value)
            self._commit(session, "lesson", lesson)
            self.logging_service.log_crud_operation("update", "lesson", lesson.id)
            return lesson

    def delete_lesson(self, lesson_id: IdLike) -> bool:
        return self._delete(Lesson, lesson_id, "lesson")

    # --- Tests & questions ---

    def create_test(
        self,
        lesson_id: IdLike,
        title: str,
        test_type: TestType,
        passing_score: int = 60,
        questions: Sequence[Dict[str, Any]] = (),
        is_active: bool = True,
    ) -> Test:
        """Create a test and its questions in one write"""
        with self.get_session() as session:
            lesson = session.get(Lesson, normalize_id(lesson_id))
            if not lesson:
                raise DatabaseError(f"Lesson {lesson_id} does not exist")
            test = Test(
                lesson_id=lesson.id,
                classroom_id=lesson.classroom_id,
                title=title,
                type=test_type,
                passing_score=passing_score,
                is_active=is_active,
            )
            for index, data in enumerate(questions):
                test.questions.append(
                    Question(
                        question=data["question"],
                        options=data.get("options", []),
                        correct_answer=data["correct_answer"],
                        is_multiple_choice=data.get(
                            "is_multiple_choice", isinstance(data["correct_answer"], list)
                        ),
                        explanation=data.get("explanation"),
                        image_url=data.get("image_url"),
                        audio_url=data.get("audio_url"),
                        order_index=data.get("order_index", index),
                    )
                )
            session.add(test)
            self._commit(session, "test", test)
            questions_loaded = list(test.questions)
            self.logging_service.log_crud_operation(
                "create", "test", test.id, questions=len(questions_loaded)
            )
            return test

    def get_test_with_questions(self, test_id: IdLike) -> Optional[Test]:
        """Load a test with its complete question set"""
        key = try_normalize_id(test_id)
        if key is None:
            return None
        with self.get_session() as session:
            stmt = (
                select(Test).options(selectinload(Test.questions)).where(Test.id == key)
            )
            return session.execute(stmt).scalar_one_or_none()

    def list_tests(
        self,
        classroom_id: Optional[IdLike] = None,
        lesson_ids: Optional[Iterable[IdLike]] = None,
        test_type: Optional[TestType] = None,
        with_questions: bool = False,
    ) -> List[Test]:
        """Active tests, oldest first"""
        with self.get_session() as session:
            stmt = select(Test).where(Test.is_active == True)  # noqa: E712
            if classroom_id is not None:
                stmt = stmt.where(Test.classroom_id == normalize_id(classroom_id))
            if lesson_ids is not None:
                stmt = stmt.where(Test.lesson_id.in_([normalize_id(i) for i in lesson_ids]))
            if test_type is not None:
                stmt = stmt.where(Test.type == test_type)
            if with_questions:
                stmt = stmt.options(selectinload(Test.questions))
            stmt = stmt.order_by(Test.created_at)
            return list(session.execute(stmt).scalars().all())

    def get_tests_by_ids(self, test_ids: Iterable[str]) -> Dict[str, Test]:
        ids = list({normalize_id(i) for i in test_ids})
        if not ids:
            return {}
        with self.get_session() as session:
            rows = session.execute(select(Test).where(Test.id.in_(ids))).scalars()
            return {row.id: row for row in rows}

    def find_lesson_test(self, lesson_id: IdLike, test_type: TestType) -> Optional[Test]:
        tests = self.list_tests(lesson_ids=[lesson_id], test_type=test_type)
        return tests[0] if tests else None

    def list_all_questions(self) -> List[Question]:
        with self.get_session() as session:
            return list(session.execute(select(Question)).scalars().all())

    def update_question(
        self, question_id: IdLike, updates: Dict[str, Any]
    ) -> Optional[Question]:
        with self.get_session() as session:
            question = session.get(Question, normalize_id(question_id))
            if not question:
                return None
            for key, value in updates.items():
                if hasattr(question, key) and key != "id":
                    setattr(question, key, value)
            self._commit(session, "question", question)
            self.logging_service.log_crud_operation("update", "question", question.id)
            return question

    # --- Games ---

    def create_game(
        self,
        lesson_id: IdLike,
        title: str,
        game_type: str,
        settings: Optional[Dict[str, Any]] = None,
        is_active: bool = True,
    ) -> Game:
        lesson = self.get_lesson(lesson_id)
        if not lesson:
            raise DatabaseError(f"Lesson {lesson_id} does not exist")
        game = Game(
            lesson_id=lesson.id,
            classroom_id=lesson.classroom_id,
            title=title,
            type=game_type,
            settings=settings or {},
            is_active=is_active,
        )
        return self._add(game, "game")

    def get_game(self, game_id: IdLike) -> Optional[Game]:
        return self._get(Game, game_id)

    def get_games_by_ids(self, game_ids: Iterable[str]) -> Dict[str, Game]:
        ids = list({normalize_id(i) for i in game_ids})
        if not ids:
            return {}
        with self.get_session() as session:
            rows = session.execute(select(Game).where(Game.id.in_(ids))).scalars()
            return {row.id: row for row in rows}

    def list_games(
        self,
        classroom_id: Optional[IdLike] = None,
        lesson_ids: Optional[Iterable[IdLike]] = None,
        game_type: Optional[str] = None,
        active_only: bool = True,
    ) -> List[Game]:
        with self.get_session() as session:
            stmt = select(Game)
            if active_only:
                stmt = stmt.where(Game.is_active == True)  # noqa: E712
            if classroom_id is not None:
                stmt = stmt.where(Game.classroom_id == normalize_id(classroom_id))
            if lesson_ids is not None:
                stmt = stmt.where(Game.lesson_id.in_([normalize_id(i) for i in lesson_ids]))
            if game_type is not None:
                stmt = stmt.where(Game.type == game_type)
            stmt = stmt.order_by(Game.created_at)
            return list(session.execute(stmt).scalars().all())

    def update_game(self, game_id: IdLike, updates: Dict[str, Any]) -> Optional[Game]:
        with self.get_session() as session:
            game = session.get(Game, normalize_id(game_id))
            if not game:
                return None
            for key, value in updates.items():
                if hasattr(game, key) and key != "id":
                    setattr(game, key, value)
            self._commit(session, "game", game)
            self.logging_service.log_crud_operation("update", "game", game.id)
            return game

    # --- Lesson progress ---

    def get_lesson_progress(
        self, student_id: IdLike, lesson_id: IdLike
    ) -> Optional[LessonProgress]:
        with self.get_session() as session:
            stmt = select(LessonProgress).where(
                and_(
                    LessonProgress.student_id == normalize_id(student_id),
                    LessonProgress.lesson_id == normalize_id(lesson_id),
                )
            )
            return session.execute(stmt).scalar_one_or_none()

    def list_lesson_progress(self, student_id: IdLike) -> List[LessonProgress]:
        with self.get_session() as session:
            stmt = (
                select(LessonProgress)
                .where(LessonProgress.student_id == normalize_id(student_id))
                .order_by(LessonProgress.updated_at.desc())
            )
            return list(session.execute(stmt).scalars().all())

    def upsert_lesson_progress(
        self, student_id: IdLike, lesson_id: IdLike, **fields: Any
    ) -> LessonProgress:
        """Create the progress row if needed and apply the given fields"""
        sid, lid = normalize_id(student_id), normalize_id(lesson_id)
        with self.get_session() as session:
            progress = session.execute(
                select(LessonProgress).where(
                    and_(
                        LessonProgress.student_id == sid,
                        LessonProgress.lesson_id == lid,
                    )
                )
            ).scalar_one_or_none()
            operation = "update"
            if progress is None:
                progress = LessonProgress(
                    student_id=sid,
                    lesson_id=lid,
                    is_completed=False,
                    time_spent=0,
                    activity_results=[],
                )
                session.add(progress)
                operation = "create"
            for key, value in fields.items():
                setattr(progress, key, value)
            self._commit(session, "lesson_progress", progress)
            self.logging_service.log_crud_operation(
                operation, "lesson_progress", progress.id, student_id=sid
            )
            return progress

    # --- Test attempts ---

    def list_test_attempts(
        self, student_id: IdLike, test_ids: Optional[Iterable[IdLike]] = None
    ) -> List[TestAttempt]:
        """Attempts by a student, newest first"""
        with self.get_session() as session:
            stmt = select(TestAttempt).where(
                TestAttempt.student_id == normalize_id(student_id)
            )
            if test_ids is not None:
                stmt = stmt.where(
                    TestAttempt.test_id.in_([normalize_id(i) for i in test_ids])
                )
            stmt = stmt.order_by(
                TestAttempt.completed_at.desc(), TestAttempt.attempt_number.desc()
            )
            return list(session.execute(stmt).scalars().all())

    def get_last_test_attempt_number(self, student_id: IdLike, test_id: IdLike) -> int:
        with self.get_session() as session:
            value = session.execute(
                select(func.max(TestAttempt.attempt_number)).where(
                    and_(
                        TestAttempt.student_id == normalize_id(student_id),
                        TestAttempt.test_id == normalize_id(test_id),
                    )
                )
            ).scalar()
            return int(value or 0)

    def create_test_attempt(self, attempt_data: dict) -> TestAttempt:
        return self._add(TestAttempt(**attempt_data), "test_attempt")

    # --- Game attempts ---

    def list_game_attempts(
        self, student_id: IdLike, game_ids: Optional[Iterable[IdLike]] = None
    ) -> List[GameAttempt]:
        """Attempts by a student, newest first"""
        with self.get_session() as session:
            stmt = select(GameAttempt).where(
                GameAttempt.student_id == normalize_id(student_id)
            )
            if game_ids is not None:
                stmt = stmt.where(
                    GameAttempt.game_id.in_([normalize_id(i) for i in game_ids])
                )
            stmt = stmt.order_by(
                GameAttempt.completed_at.desc(), GameAttempt.attempt_number.desc()
            )
            return list(session.execute(stmt).scalars().all())

    def get_last_game_attempt_number(self, student_id: IdLike, game_id: IdLike) -> int:
        with self.get_session() as session:
            value = session.execute(
                select(func.max(GameAttempt.attempt_number)).where(
                    and_(
                        GameAttempt.student_id == normalize_id(student_id),
                        GameAttempt.game_id == normalize_id(game_id),
                    )
                )
            ).scalar()
            return int(value or 0)

    def create_game_attempt(self, attempt_data: dict) -> GameAttempt:
        return self._add(GameAttempt(**attempt_data), "game_attempt")

    # --- Writing attempts ---

    def create_writing_attempt(self, attempt_data: dict) -> WritingAttempt:
        return self._add(WritingAttempt(**attempt_data), "writing_attempt")

    def list_writing_attempts(
        self, student_id: IdLike, limit: int = 50, offset: int = 0
    ) -> Tuple[List[WritingAttempt], int]:
        """Page of a student's writing attempts (newest first) and the total count"""
        sid = normalize_id(student_id)
        with self.get_session() as session:
            total = (
                session.execute(
                    select(func.count(WritingAttempt.id)).where(
                        WritingAttempt.student_id == sid
                    )
                ).scalar()
                or 0
            )
            stmt = (
                select(WritingAttempt)
                .where(WritingAttempt.student_id == sid)
                .order_by(WritingAttempt.created_at.desc())
                .limit(limit)
                .offset(offset)
            )
            return list(session.execute(stmt).scalars().all()), int(total)

    # --- Notifications ---

    def create_notification(
        self,
        student_id: IdLike,
        title: str,
        message: str,
        notification_type: NotificationType = NotificationType.INFO,
    ) -> Notification:
        notification = Notification(
            student_id=normalize_id(student_id),
            title=title,
            message=message,
            type=notification_type,
        )
        return self._add(notification, "notification")

    def list_notifications(
        self, student_id: IdLike, unread_only: bool = False
    ) -> List[Notification]:
        with self.get_session() as session:
            stmt = select(Notification).where(
                Notification.student_id == normalize_id(student_id)
            )
            if unread_only:
                stmt = stmt.where(Notification.is_read == False)  # noqa: E712
            stmt = stmt.order_by(Notification.created_at.desc())
            return list(session.execute(stmt).scalars().all())

    def mark_notification_read(
        self, student_id: IdLike, notification_id: IdLike
    ) -> Optional[Notification]:
        """Mark a student's notification as read; None if it is not theirs"""
        with self.get_session() as session:
            notification = session.execute(
                select(Notification).where(
                    and_(
                        Notification.id == normalize_id(notification_id),
                        Notification.student_id == normalize_id(student_id),
                    )
                )
            ).scalar_one_or_none()
            if not notification:
                return None
            if not notification.is_read:
                notification.is_read = True
                self._commit(session, "notification", notification)
                self.logging_service.log_crud_operation(
                    "update", "notification", notification.id
                )
            return notification


# Thread-safe singleton holder
class _Singleton:
    lock = threading.Lock()
    service: Optional[DatabaseService] = None


_singleton = _Singleton()


def get_db_service() -> DatabaseService:
    """Get the global database service instance"""
    with _singleton.lock:
        if _singleton.service is None:
            _singleton.service = DatabaseService()
        return _singleton.service


def init_db_service(db_path: Optional[str] = None) -> DatabaseService:
    """Initialize the global database service"""
    with _singleton.lock:
        if _singleton.service is not None:
            _singleton.service.close()
        _singleton.service = DatabaseService(db_path)
        return _singleton.service


def reset_db_service() -> None:
    """Dispose of the global database service. Useful for testing."""
    with _singleton.lock:
        if _singleton.service is not None:
            _singleton.service.close()
        _singleton.service = None
