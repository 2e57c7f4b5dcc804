"""
SQLAlchemy models for the Thai literacy backend

This module contains all database models: classrooms, lessons and their
tests/games, per-student progress and attempt history, writing attempts and
notifications.
"""

import enum
from datetime import datetime
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Boolean,
    ForeignKey,
    Text,
    Enum as SQLEnum,
    Index,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.sqlite import JSON

from .ids import new_id

Base = declarative_base()

ID_LENGTH = 32


class TestType(enum.Enum):
    """Test placement around a lesson"""

    __test__ = False

    PRE_TEST = "PRE_TEST"
    POST_TEST = "POST_TEST"


class NotificationType(enum.Enum):
    """Notification severities"""

    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"


class LessonStatus(enum.Enum):
    """Per-student lesson progression states"""

    LOCKED = "LOCKED"
    UNLOCKED = "UNLOCKED"
    POST_TEST_READY = "POST_TEST_READY"
    GAMES_READY = "GAMES_READY"
    COMPLETED = "COMPLETED"


class Classroom(Base):
    """Classroom owning an ordered set of lessons"""

    __tablename__ = "classrooms"

    id = Column(String(ID_LENGTH), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)
    grade_level = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    # Relationships
    lessons = relationship(
        "Lesson", back_populates="classroom", cascade="all, delete-orphan"
    )
    students = relationship("Student", back_populates="classroom")

    def __repr__(self):
        return f"<Classroom(id={self.id}, name='{self.name}')>"


class Student(Base):
    """Student account (authentication lives elsewhere)"""

    __tablename__ = "students"

    id = Column(String(ID_LENGTH), primary_key=True, default=new_id)
    classroom_id = Column(
        String(ID_LENGTH), ForeignKey("classrooms.id"), nullable=True, index=True
    )
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False, default="")
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    # Relationships
    classroom = relationship("Classroom", back_populates="students")
    lesson_progress = relationship(
        "LessonProgress", back_populates="student", cascade="all, delete-orphan"
    )
    test_attempts = relationship(
        "TestAttempt", back_populates="student", cascade="all, delete-orphan"
    )
    game_attempts = relationship(
        "GameAttempt", back_populates="student", cascade="all, delete-orphan"
    )
    writing_attempts = relationship(
        "WritingAttempt", back_populates="student", cascade="all, delete-orphan"
    )
    notifications = relationship(
        "Notification", back_populates="student", cascade="all, delete-orphan"
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self):
        return f"<Student(id={self.id}, name='{self.full_name}')>"


class Lesson(Base):
    """Lesson within a classroom, grouped by chapter and totally ordered"""

    __tablename__ = "lessons"

    id = Column(String(ID_LENGTH), primary_key=True, default=new_id)
    classroom_id = Column(
        String(ID_LENGTH), ForeignKey("classrooms.id"), nullable=False, index=True
    )
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    content = Column(Text, nullable=True)  # HTML/markdown with asset paths
    chapter = Column(String(100), nullable=True, index=True)
    order_index = Column(Integer, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    __table_args__ = (
        UniqueConstraint("classroom_id", "order_index", name="uq_lesson_order"),
    )

    # Relationships
    classroom = relationship("Classroom", back_populates="lessons")
    tests = relationship("Test", back_populates="lesson", cascade="all, delete-orphan")
    games = relationship("Game", back_populates="lesson", cascade="all, delete-orphan")
    progress_records = relationship(
        "LessonProgress", back_populates="lesson", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Lesson(id={self.id}, order={self.order_index}, chapter='{self.chapter}')>"


class Test(Base):
    """Pre- or post-test attached to a lesson"""

    __test__ = False
    __tablename__ = "tests"

    id = Column(String(ID_LENGTH), primary_key=True, default=new_id)
    lesson_id = Column(
        String(ID_LENGTH), ForeignKey("lessons.id"), nullable=False, index=True
    )
    classroom_id = Column(String(ID_LENGTH), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    type = Column(SQLEnum(TestType), nullable=False, index=True)
    passing_score = Column(Integer, default=60, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    # Relationships
    lesson = relationship("Lesson", back_populates="tests")
    questions = relationship(
        "Question",
        back_populates="test",
        cascade="all, delete-orphan",
        order_by="Question.order_index",
    )
    attempts = relationship(
        "TestAttempt", back_populates="test", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Test(id={self.id}, type={self.type.value}, passing={self.passing_score})>"


class Question(Base):
    """Multiple-choice question; correct_answer is an index or a list of indices"""

    __tablename__ = "questions"

    id = Column(String(ID_LENGTH), primary_key=True, default=new_id)
    test_id = Column(
        String(ID_LENGTH), ForeignKey("tests.id"), nullable=False, index=True
    )
    question = Column(Text, nullable=False)
    options = Column(JSON, nullable=False, default=list)
    correct_answer = Column(JSON, nullable=False)
    is_multiple_choice = Column(Boolean, default=False, nullable=False)
    explanation = Column(Text, nullable=True)
    image_url = Column(String(500), nullable=True)
    audio_url = Column(String(500), nullable=True)
    order_index = Column(Integer, default=0, nullable=False, index=True)

    # Relationships
    test = relationship("Test", back_populates="questions")

    def __repr__(self):
        return f"<Question(id={self.id}, order={self.order_index})>"


class Game(Base):
    """Game attached to a lesson; settings are opaque to the engines"""

    __tablename__ = "games"

    id = Column(String(ID_LENGTH), primary_key=True, default=new_id)
    lesson_id = Column(
        String(ID_LENGTH), ForeignKey("lessons.id"), nullable=False, index=True
    )
    classroom_id = Column(String(ID_LENGTH), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    type = Column(String(50), nullable=False)
    settings = Column(JSON, nullable=True, default=dict)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False)

    # Relationships
    lesson = relationship("Lesson", back_populates="games")
    attempts = relationship(
        "GameAttempt", back_populates="game", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Game(id={self.id}, type='{self.type}')>"


class LessonProgress(Base):
    """One row per (student, lesson), created lazily on first write"""

    __tablename__ = "lesson_progress"

    id = Column(String(ID_LENGTH), primary_key=True, default=new_id)
    student_id = Column(
        String(ID_LENGTH), ForeignKey("students.id"), nullable=False, index=True
    )
    lesson_id = Column(
        String(ID_LENGTH), ForeignKey("lessons.id"), nullable=False, index=True
    )
    is_completed = Column(Boolean, default=False, nullable=False)
    completed_at = Column(DateTime, nullable=True)
    time_spent = Column(Integer, default=0, nullable=False)  # seconds
    activity_results = Column(JSON, nullable=False, default=list)
    updated_at = Column(
        DateTime, default=datetime.now, onupdate=datetime.now, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("student_id", "lesson_id", name="uq_progress_student_lesson"),
    )

    # Relationships
    student = relationship("Student", back_populates="lesson_progress")
    lesson = relationship("Lesson", back_populates="progress_records")

    def __repr__(self):
        return f"<LessonProgress(student_id={self.student_id}, lesson_id={self.lesson_id}, completed={self.is_completed})>"


class TestAttempt(Base):
    """Immutable record of one test submission"""

    __test__ = False
    __tablename__ = "test_attempts"

    id = Column(String(ID_LENGTH), primary_key=True, default=new_id)
    student_id = Column(
        String(ID_LENGTH), ForeignKey("students.id"), nullable=False, index=True
    )
    test_id = Column(
        String(ID_LENGTH), ForeignKey("tests.id"), nullable=False, index=True
    )
    attempt_number = Column(Integer, nullable=False)
    answers = Column(JSON, nullable=False, default=dict)
    score = Column(Integer, nullable=False)
    is_passed = Column(Boolean, nullable=False)
    time_spent = Column(Integer, default=0, nullable=False)
    completed_at = Column(DateTime, default=datetime.now, nullable=False, index=True)

    # Concurrent submissions may race on attempt_number, so no unique constraint
    __table_args__ = (
        Index("ix_test_attempt_student_test", "student_id", "test_id", "attempt_number"),
    )

    # Relationships
    student = relationship("Student", back_populates="test_attempts")
    test = relationship("Test", back_populates="attempts")

    def __repr__(self):
        return f"<TestAttempt(id={self.id}, attempt={self.attempt_number}, score={self.score})>"


class GameAttempt(Base):
    """Immutable record of one game play"""

    __tablename__ = "game_attempts"

    id = Column(String(ID_LENGTH), primary_key=True, default=new_id)
    student_id = Column(
        String(ID_LENGTH), ForeignKey("students.id"), nullable=False, index=True
    )
    game_id = Column(
        String(ID_LENGTH), ForeignKey("games.id"), nullable=False, index=True
    )
    attempt_number = Column(Integer, nullable=False)
    score = Column(Integer, nullable=False)
    level = Column(Integer, default=1, nullable=False)
    is_passed = Column(Boolean, nullable=False)
    time_spent = Column(Integer, default=0, nullable=False)
    data = Column(JSON, nullable=True)
    completed_at = Column(DateTime, default=datetime.now, nullable=False, index=True)

    __table_args__ = (
        Index("ix_game_attempt_student_game", "student_id", "game_id", "attempt_number"),
    )

    # Relationships
    student = relationship("Student", back_populates="game_attempts")
    game = relationship("Game", back_populates="attempts")

    def __repr__(self):
        return f"<GameAttempt(id={self.id}, attempt={self.attempt_number}, score={self.score})>"


class WritingAttempt(Base):
    """Append-only handwriting verification history"""

    __tablename__ = "writing_attempts"

    id = Column(String(ID_LENGTH), primary_key=True, default=new_id)
    student_id = Column(
        String(ID_LENGTH), ForeignKey("students.id"), nullable=False, index=True
    )
    target_word = Column(String(100), nullable=False)
    image_path = Column(String(500), nullable=True)
    image_url = Column(String(500), nullable=True)
    image_data = Column(Text, nullable=True)  # inline data URL when not stored on disk
    detected_text = Column(String(200), default="", nullable=False)
    is_correct = Column(Boolean, default=False, nullable=False)
    confidence = Column(Integer, default=0, nullable=False)
    explanation = Column(Text, default="", nullable=False)
    method = Column(String(50), default="Gemini", nullable=False)
    created_at = Column(DateTime, default=datetime.now, nullable=False, index=True)

    __table_args__ = (
        Index("ix_writing_student_created", "student_id", "created_at"),
        Index("ix_writing_student_target", "student_id", "target_word"),
    )

    # Relationships
    student = relationship("Student", back_populates="writing_attempts")

    def __repr__(self):
        return f"<WritingAttempt(id={self.id}, target='{self.target_word}', correct={self.is_correct})>"


class Notification(Base):
    """Student notification created by progression and grading events"""

    __tablename__ = "notifications"

    id = Column(String(ID_LENGTH), primary_key=True, default=new_id)
    student_id = Column(
        String(ID_LENGTH), ForeignKey("students.id"), nullable=False, index=True
    )
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(
        SQLEnum(NotificationType), default=NotificationType.INFO, nullable=False
    )
    is_read = Column(Boolean, default=False, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.now, nullable=False, index=True)

    # Relationships
    student = relationship("Student", back_populates="notifications")

    def __repr__(self):
        return f"<Notification(id={self.id}, type={self.type.value}, read={self.is_read})>"
