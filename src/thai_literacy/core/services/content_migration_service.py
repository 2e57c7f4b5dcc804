"""
Content Migration Service
One-off rewrite of legacy vocabulary asset folders in stored content.

Older lessons point at ``/คำศัพท์บท1-4/`` or ``/คำศัพท์บท1-3/``; the assets now
live in ``/คำศัพท์บท1-8/``. Running the migration twice is a no-op.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .database import DatabaseService, get_db_service
from .logging import get_logging_service

LEGACY_ASSET_PATHS: Tuple[str, ...] = ("/คำศัพท์บท1-4/", "/คำศัพท์บท1-3/")
CURRENT_ASSET_PATH = "/คำศัพท์บท1-8/"


@dataclass
class MigrationReport:
    """Ids of rows that were (or, on a dry run, would be) rewritten"""

    lessons: List[str] = field(default_factory=list)
    questions: List[str] = field(default_factory=list)
    games: List[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def total(self) -> int:
        return len(self.lessons) + len(self.questions) + len(self.games)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lessons": len(self.lessons),
            "questions": len(self.questions),
            "games": len(self.games),
            "total": self.total,
            "dry_run": self.dry_run,
        }


def rewrite_text(value: Optional[str]) -> Optional[str]:
    if not value:
        return value
    for legacy in LEGACY_ASSET_PATHS:
        value = value.replace(legacy, CURRENT_ASSET_PATH)
    return value


def rewrite_nested(value: Any) -> Any:
    """Rewrite every string inside a JSON-like structure"""
    if isinstance(value, str):
        return rewrite_text(value)
    if isinstance(value, dict):
        return {key: rewrite_nested(item) for key, item in value.items()}
    if isinstance(value, list):
        return [rewrite_nested(item) for item in value]
    return value


class ContentMigrationService:
    """Rewrites legacy asset paths across lessons, questions and games"""

    QUESTION_FIELDS = ("question", "explanation", "image_url", "audio_url")

    def __init__(self, db: Optional[DatabaseService] = None):
        self.db = db or get_db_service()
        self.logging_service = get_logging_service()
        self.logger = self.logging_service.get_logger("migration")

    def run(self, dry_run: bool = False) -> MigrationReport:
        """
        Apply the migration.

        Args:
            dry_run: Only report what would change

        Returns:
            MigrationReport listing the affected rows
        """
        report = MigrationReport(dry_run=dry_run)

        for lesson in self.db.list_all_lessons():
            content = rewrite_text(lesson.content)
            if content != lesson.content:
                report.lessons.append(lesson.id)
                if not dry_run:
                    self.db.update_lesson(lesson.id, {"content": content})

        for question in self.db.list_all_questions():
            updates: Dict[str, Any] = {}
            for name in self.QUESTION_FIELDS:
                original = getattr(question, name)
                rewritten = rewrite_text(original)
                if rewritten != original:
                    updates[name] = rewritten
            options = rewrite_nested(question.options)
            if options != question.options:
                updates["options"] = options
            if updates:
                report.questions.append(question.id)
                if not dry_run:
                    self.db.update_question(question.id, updates)

        for game in self.db.list_games(active_only=False):
            settings = rewrite_nested(game.settings)
            if settings != game.settings:
                report.games.append(game.id)
                if not dry_run:
                    self.db.update_game(game.id, {"settings": settings})

        self.logging_service.log_event(
            "migration",
            "INFO",
            "migration.asset_paths",
            **report.to_dict(),
        )
        return report


def get_content_migration_service() -> ContentMigrationService:
    return ContentMigrationService()
