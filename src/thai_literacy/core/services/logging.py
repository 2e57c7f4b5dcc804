"""
Logging service for the Thai literacy backend
"""

import os
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional
import structlog


def _parse_level(level: str) -> int:
    """Numeric level for a name such as "INFO"; unknown names fall back to INFO"""
    value = logging.getLevelName(str(level).strip().upper())
    return value if isinstance(value, int) else logging.INFO


class LoggingService:
    """Structured logging service"""

    def __init__(self, log_dir: Optional[str] = None, level: Optional[str] = None):
        if log_dir is None or level is None:
            from .settings_config_service import get_settings_service

            defaults = get_settings_service().get_logging_defaults()
            log_dir = log_dir or defaults["dir"]
            level = level or defaults["default_level"]
        self.log_dir = Path(log_dir)
        self.level = _parse_level(level)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        # Configure structlog
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                structlog.processors.JSONRenderer(ensure_ascii=False),
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )

        self._handlers: list[logging.Handler] = []
        self._setup_handlers()

    def _setup_handlers(self):
        """Set up logging handlers"""
        # Main application log
        main_handler = logging.FileHandler(
            self.log_dir / "thai_literacy.log", encoding="utf-8"
        )
        main_handler.setLevel(logging.DEBUG)
        main_handler.setFormatter(logging.Formatter("%(message)s"))

        # Error log
        error_handler = logging.FileHandler(self.log_dir / "errors.log", encoding="utf-8")
        error_handler.setLevel(logging.WARNING)
        error_handler.setFormatter(logging.Formatter("%(message)s"))

        # Console handler for development
        console_handler = logging.StreamHandler()
        console_level = logging.DEBUG if os.getenv("THAI_LMS_DEV_MODE") else self.level
        console_handler.setLevel(console_level)
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

        # Configure root logger
        root_logger = logging.getLogger()
        root_logger.setLevel(logging.DEBUG)
        for handler in (main_handler, error_handler, console_handler):
            root_logger.addHandler(handler)
            self._handlers.append(handler)

    def close(self):
        """Detach and close the handlers installed by this service"""
        root_logger = logging.getLogger()
        for handler in self._handlers:
            root_logger.removeHandler(handler)
            handler.close()
        self._handlers.clear()

    def get_logger(self, name: str) -> structlog.stdlib.BoundLogger:
        """Get a structured logger"""
        return structlog.get_logger(name)

    def log_event(
        self,
        logger_name: str,
        level: str,
        event_type: str,
        student_id: Optional[str] = None,
        **kwargs,
    ):
        """Log a structured event"""
        logger = self.get_logger(logger_name)

        log_data = {
            "event_type": event_type,
            "student_id": student_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **kwargs,
        }

        # Map level to logger method
        level_method = getattr(logger, level.lower(), logger.info)
        level_method(event_type, **log_data)

    def log_crud_operation(
        self,
        operation: str,
        entity: str,
        entity_id: Any,
        student_id: Optional[str] = None,
        **kwargs,
    ):
        """Log CRUD operation"""
        self.log_event(
            "crud",
            "INFO",
            f"crud.{operation}",
            student_id=student_id,
            entity=entity,
            entity_id=entity_id,
            **kwargs,
        )

    def log_ai_operation(
        self,
        operation: str,
        provider: str,
        model: str,
        student_id: Optional[str] = None,
        success: bool = True,
        duration_ms: Optional[int] = None,
        **kwargs,
    ):
        """Log AI operation"""
        level = "INFO" if success else "ERROR"
        self.log_event(
            "ai",
            level,
            f"ai.{operation}",
            student_id=student_id,
            provider=provider,
            model=model,
            success=success,
            duration_ms=duration_ms,
            **kwargs,
        )

    def log_error(
        self,
        error_type: str,
        error_message: str,
        student_id: Optional[str] = None,
        level: str = "ERROR",
        **kwargs,
    ):
        """Log error event"""
        self.log_event(
            "error",
            level,
            f"error.{error_type}",
            student_id=student_id,
            error_message=error_message,
            **kwargs,
        )

    def log_performance(
        self, operation: str, duration_ms: int, student_id: Optional[str] = None, **kwargs
    ):
        """Log performance metric"""
        self.log_event(
            "performance",
            "INFO",
            f"performance.{operation}",
            student_id=student_id,
            duration_ms=duration_ms,
            **kwargs,
        )

    def log_attempt(
        self,
        kind: str,
        student_id: str,
        item_id: str,
        attempt_number: int,
        score: int,
        is_passed: bool,
        **kwargs,
    ):
        """Log a graded test or game attempt, e.g. ``test.submitted`` with ``test_id``"""
        self.log_event(
            "grading",
            "INFO",
            f"{kind}.submitted",
            student_id=student_id,
            attempt_number=attempt_number,
            score=score,
            is_passed=is_passed,
            **{f"{kind}_id": item_id},
            **kwargs,
        )

    def log_handwriting_verdict(
        self,
        target_word: str,
        detected: str,
        raw_confidence: int,
        final_confidence: int,
        is_correct: bool,
        rejections: Optional[list] = None,
        student_id: Optional[str] = None,
    ):
        """
        Log the outcome of one handwriting check.

        A verdict the trust policy overrode is logged as a warning so it also
        lands in the error log.
        """
        rejected = bool(rejections)
        self.log_event(
            "handwriting",
            "WARNING" if rejected else "INFO",
            "handwriting.verdict_rejected" if rejected else "handwriting.verdict_accepted",
            student_id=student_id,
            target_word=target_word,
            detected=detected,
            is_correct=is_correct,
            raw_confidence=raw_confidence,
            final_confidence=final_confidence,
            reasons=list(rejections or []),
        )

    def log_lesson_progress(
        self, event: str, student_id: str, lesson_id: str, **kwargs
    ):
        """Log a lesson progression step, e.g. ``lesson.completed``"""
        self.log_event(
            "progression",
            "INFO",
            f"lesson.{event}",
            student_id=student_id,
            lesson_id=lesson_id,
            **kwargs,
        )


# Global logging service instance
_logging_service: Optional[LoggingService] = None


def get_logging_service() -> LoggingService:
    """Get the global logging service instance"""
    global _logging_service
    if _logging_service is None:
        _logging_service = LoggingService()
    return _logging_service


def reset_logging_service() -> None:
    """Drop the global instance and its handlers. Useful for testing."""
    global _logging_service
    if _logging_service is not None:
        _logging_service.close()
    _logging_service = None


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger instance"""
    return get_logging_service().get_logger(name)
