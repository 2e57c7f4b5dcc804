"""
Test configuration and setup for the Thai literacy backend
"""

import pytest
import os
import sys
from pathlib import Path
import tempfile
import shutil
from unittest.mock import Mock

# Add this repo's `src/` to path for imports
project_root = Path(__file__).parent.parent
src_path = project_root / "src"
sys.path.insert(0, str(src_path))
# Project root keeps scripts/ importable
sys.path.insert(0, str(project_root))

# Set test environment variables
os.environ["THAI_LMS_TEST_MODE"] = "1"
os.environ.pop("VERCEL", None)
os.environ.pop("THAI_LMS_READ_ONLY_STORAGE", None)
os.environ.pop("GEMINI_API_KEY", None)

# Reset settings service to ensure it loads env-test.properties
from thai_literacy.core.services.settings_config_service import reset_settings_service

reset_settings_service()


# A canvas payload long enough to pass the empty-canvas check
CANVAS_PAYLOAD = "iVBORw0KGgo" + "A" * 189
CANVAS_DATA_URL = f"data:image/png;base64,{CANVAS_PAYLOAD}"


@pytest.fixture(scope="function")
def test_data_dir():
    """Create a temporary test data directory"""
    temp_dir = tempfile.mkdtemp(prefix="thai_lms_test_")
    yield Path(temp_dir)
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def test_db_path(test_data_dir):
    """Create a test database path"""
    return test_data_dir / "test.db"


@pytest.fixture
def test_log_dir(test_data_dir):
    """Create a test logs directory"""
    log_dir = test_data_dir / "logs"
    log_dir.mkdir(exist_ok=True)
    return log_dir


@pytest.fixture(autouse=True)
def setup_test_env(test_db_path, test_log_dir):
    """Set up test environment"""
    from thai_literacy.core.services.database import init_db_service, reset_db_service
    from thai_literacy.core.services.logging import reset_logging_service
    from thai_literacy.core.services.vision_service import reset_vision_verifier

    os.environ["THAI_LMS_DB_PATH"] = str(test_db_path)
    os.environ["THAI_LMS_LOG_DIR"] = str(test_log_dir)
    reset_settings_service()
    reset_logging_service()

    init_db_service(str(test_db_path))

    yield

    reset_db_service()
    reset_vision_verifier()
    reset_logging_service()
    reset_settings_service()
    os.environ.pop("THAI_LMS_DB_PATH", None)
    os.environ.pop("THAI_LMS_LOG_DIR", None)


@pytest.fixture
def db_service():
    """Provide the database service initialized for this test"""
    from thai_literacy.core.services.database import get_db_service

    return get_db_service()


@pytest.fixture
def classroom(db_service):
    return db_service.create_classroom("ป.1/1", grade_level="P1")


@pytest.fixture
def student(db_service, classroom):
    return db_service.create_student("สมชาย", "ใจดี", classroom_id=classroom.id)


@pytest.fixture
def make_lesson(db_service, classroom):
    """Factory for lessons in the default classroom"""

    def _make(order_index, chapter="บทที่ 1", title=None, **kwargs):
        return db_service.create_lesson(
            classroom.id,
            title or f"บทเรียน {order_index}",
            order_index,
            chapter=chapter,
            **kwargs,
        )

    return _make


@pytest.fixture
def storage_config(test_data_dir):
    return {
        "upload_path": str(test_data_dir / "uploads"),
        "url_prefix": "/uploads",
        "read_only": False,
    }


@pytest.fixture
def mock_verifier():
    """Vision verifier stub; set ``detect.return_value`` to a RawVerdict"""
    from thai_literacy.core.services.vision_service import RawVerdict

    verifier = Mock()
    verifier.detect.return_value = RawVerdict(
        detected_text="ก",
        is_correct=True,
        confidence=95,
        explanation="ทับเส้นประได้ดีมาก",
    )
    return verifier


@pytest.fixture
def canvas_data_url():
    return CANVAS_DATA_URL
