"""
Tests for the handwriting verification pipeline
"""

import pytest
from pathlib import Path
from unittest.mock import patch

from thai_literacy.core.exceptions import (
    DetectionFailedError,
    EmptyCanvasError,
    StudentNotFoundError,
    VisionQuotaError,
)
from thai_literacy.core.services.handwriting_service import HandwritingService
from thai_literacy.core.services.image_storage_service import ImageStorageService
from thai_literacy.core.services.vision_service import RawVerdict


@pytest.fixture
def storage(storage_config):
    return ImageStorageService(storage_config)


@pytest.fixture
def handwriting(db_service, mock_verifier, storage):
    return HandwritingService(db_service, verifier=mock_verifier, storage=storage)


class TestSaveAndDetect:
    """Verified and recorded submissions"""

    def test_correct_trace_is_stored(
        self, handwriting, db_service, mock_verifier, student, canvas_data_url, storage_config
    ):
        result = handwriting.save_and_detect(student.id, canvas_data_url, "ก")

        assert result.is_correct is True
        assert result.confidence == 95
        assert result.method == "Gemini"
        assert result.image_data is None
        assert result.image_url.startswith("/uploads/writing/writing_")
        mock_verifier.detect.assert_called_once_with(canvas_data_url.partition(",")[2], "ก")

        stored_files = list((Path(storage_config["upload_path"]) / "writing").iterdir())
        assert len(stored_files) == 1
        assert stored_files[0].name.endswith(".png")

        attempts, total = db_service.list_writing_attempts(student.id)
        assert total == 1
        assert attempts[0].id == result.attempt_id
        assert attempts[0].image_url == result.image_url
        assert attempts[0].is_correct is True

    def test_rejected_verdict_is_sanitized_before_storing(
        self, handwriting, db_service, mock_verifier, student, canvas_data_url
    ):
        mock_verifier.detect.return_value = RawVerdict("ก", True, 95, "เขียนมั่ว เส้นซิกแซก")

        result = handwriting.save_and_detect(student.id, canvas_data_url, "ก")

        assert result.is_correct is False
        assert result.confidence <= 30
        attempt = db_service.list_writing_attempts(student.id)[0][0]
        assert attempt.is_correct is False
        assert attempt.confidence == result.confidence

    def test_verdict_is_logged_with_rejections(
        self, handwriting, mock_verifier, student, canvas_data_url
    ):
        mock_verifier.detect.return_value = RawVerdict("ข", True, 90, "ทับเส้นประ")

        with patch.object(handwriting.logging_service, "log_handwriting_verdict") as mock_log:
            result = handwriting.save_and_detect(student.id, canvas_data_url, "ก")

        args, kwargs = mock_log.call_args
        assert args == ("ก", "ข", 90, result.confidence, False)
        assert kwargs["rejections"] == result.rejections
        assert kwargs["rejections"]
        assert kwargs["student_id"] == student.id

    def test_read_only_storage_keeps_image_inline(
        self, db_service, mock_verifier, student, canvas_data_url, storage_config
    ):
        storage = ImageStorageService({**storage_config, "read_only": True})
        service = HandwritingService(db_service, verifier=mock_verifier, storage=storage)

        result = service.save_and_detect(student.id, canvas_data_url, "ก")

        assert result.image_url is None
        assert result.image_data == canvas_data_url
        assert not Path(storage_config["upload_path"]).exists()
        attempt = db_service.list_writing_attempts(student.id)[0][0]
        assert attempt.image_data == canvas_data_url
        assert attempt.image_path is None

    def test_storage_failure_degrades_to_inline(
        self, db_service, mock_verifier, student, canvas_data_url, storage_config, test_data_dir
    ):
        blocker = test_data_dir / "not_a_directory"
        blocker.write_text("occupied")
        storage = ImageStorageService({**storage_config, "upload_path": str(blocker)})
        service = HandwritingService(db_service, verifier=mock_verifier, storage=storage)

        result = service.save_and_detect(student.id, canvas_data_url, "ก")

        assert result.is_correct is True
        assert result.image_url is None
        assert result.image_data == canvas_data_url

    def test_short_payload_never_reaches_verifier(self, handwriting, mock_verifier, student):
        with pytest.raises(EmptyCanvasError):
            handwriting.save_and_detect(student.id, "data:image/png;base64,AAAA", "ก")

        mock_verifier.detect.assert_not_called()

    def test_unknown_student(self, handwriting, mock_verifier, canvas_data_url):
        with pytest.raises(StudentNotFoundError):
            handwriting.save_and_detect("9" * 32, canvas_data_url, "ก")

        mock_verifier.detect.assert_not_called()

    def test_vision_failure_records_nothing(
        self, handwriting, db_service, mock_verifier, student, canvas_data_url
    ):
        mock_verifier.detect.side_effect = VisionQuotaError("429 from upstream")

        with pytest.raises(VisionQuotaError):
            handwriting.save_and_detect(student.id, canvas_data_url, "ก")

        assert db_service.list_writing_attempts(student.id) == ([], 0)

    def test_target_word_trimmed(self, handwriting, mock_verifier, student, canvas_data_url):
        result = handwriting.save_and_detect(student.id, canvas_data_url, " ก ")

        assert result.target_word == "ก"
        assert mock_verifier.detect.call_args[0][1] == "ก"


class TestDetect:
    """Legacy verification without recording"""

    def test_detect_returns_verdict(self, handwriting, db_service, student, canvas_data_url):
        result = handwriting.detect(canvas_data_url, "ก")

        assert result.is_correct is True
        assert result.attempt_id is None
        assert db_service.list_writing_attempts(student.id)[1] == 0

    def test_empty_detection_fails(self, handwriting, mock_verifier, canvas_data_url):
        mock_verifier.detect.return_value = RawVerdict("", False, 0, "ไม่พบตัวอักษร")

        with pytest.raises(DetectionFailedError) as exc_info:
            handwriting.detect(canvas_data_url, "ก")

        assert exc_info.value.user_message == "ไม่สามารถตรวจจับตัวอักษรได้ กรุณาเขียนให้ชัดเจนขึ้น"

    def test_empty_detection_without_explanation(self, handwriting, mock_verifier, canvas_data_url):
        mock_verifier.detect.return_value = RawVerdict("", False, 0, "")

        with pytest.raises(DetectionFailedError) as exc_info:
            handwriting.detect(canvas_data_url, "ก")

        assert "ควรเขียน" not in exc_info.value.user_message
        assert exc_info.value.user_message == DetectionFailedError.default_user_message


class TestWritingHistory:
    """Paginated history"""

    def test_history_newest_first(self, handwriting, mock_verifier, student, canvas_data_url):
        for word in ("ก", "ข", "ค"):
            mock_verifier.detect.return_value = RawVerdict(word, True, 95, "ทับเส้นประ")
            handwriting.save_and_detect(student.id, canvas_data_url, word)

        history = handwriting.get_writing_history(student.id, limit=2)

        assert history["total"] == 3
        assert history["limit"] == 2
        assert [a.target_word for a in history["attempts"]] == ["ค", "ข"]

        rest = handwriting.get_writing_history(student.id, limit=2, offset=2)
        assert [a.target_word for a in rest["attempts"]] == ["ก"]

    def test_history_unknown_student(self, handwriting):
        with pytest.raises(StudentNotFoundError):
            handwriting.get_writing_history("8" * 32)
