"""
Integration tests for the student HTTP API
"""

import pytest
from fastapi.testclient import TestClient

from thai_literacy.api.dependencies import get_image_storage, get_vision_verifier_dependency
from thai_literacy.api.main import app
from thai_literacy.core.exceptions import VisionNetworkError
from thai_literacy.core.models import TestType
from thai_literacy.core.services.image_storage_service import ImageStorageService
from thai_literacy.core.services.vision_service import RawVerdict


@pytest.fixture
def client(mock_verifier, storage_config):
    app.dependency_overrides[get_vision_verifier_dependency] = lambda: mock_verifier
    app.dependency_overrides[get_image_storage] = lambda: ImageStorageService(storage_config)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


class TestHealth:
    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "online"


class TestLessonRoutes:
    """Lesson progression over HTTP"""

    def test_lesson_states_and_completion(self, client, student, make_lesson):
        first = make_lesson(1, title="พยัญชนะ ก-ง")
        make_lesson(2, title="พยัญชนะ จ-ญ")

        data = client.get(f"/api/students/{student.id}/lessons").json()["data"]
        assert [lesson["status"] for lesson in data] == ["UNLOCKED", "LOCKED"]
        assert data[0]["can_access"] is True

        response = client.post(f"/api/students/{student.id}/lessons/{first.id}/complete")
        assert response.status_code == 200
        assert response.json()["data"]["is_completed"] is True

        data = client.get(f"/api/students/{student.id}/lessons").json()["data"]
        assert [lesson["status"] for lesson in data] == ["COMPLETED", "UNLOCKED"]

    def test_explicit_classroom_query(self, client, student, classroom, make_lesson):
        make_lesson(1)

        response = client.get(
            f"/api/students/{student.id}/lessons", params={"classroom_id": classroom.id}
        )

        assert response.status_code == 200
        assert len(response.json()["data"]) == 1

    def test_unknown_student_is_404(self, client):
        response = client.get(f"/api/students/{'0' * 32}/lessons")

        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "ไม่พบข้อมูลนักเรียน"}

    def test_pre_test_status(self, client, db_service, student, make_lesson):
        lesson = make_lesson(1)
        db_service.create_test(lesson.id, "ก่อนเรียน", TestType.PRE_TEST)

        data = client.get(
            f"/api/students/{student.id}/lessons/{lesson.id}/pre-test-status"
        ).json()["data"]

        assert data["has_pre_test"] is True
        assert data["can_access_lesson"] is False

    def test_submit_activity(self, client, student, make_lesson):
        lesson = make_lesson(1)

        response = client.post(
            f"/api/students/{student.id}/lessons/{lesson.id}/activities",
            json={"activityId": "match-1", "answer": "ก", "isCorrect": True, "timeSpent": 12},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["time_spent"] == 12
        assert data["activity_results"][0]["activity_id"] == "match-1"


class TestTestRoutes:
    """Test listing and submission over HTTP"""

    @pytest.fixture
    def post_test(self, db_service, make_lesson):
        lesson = make_lesson(1)
        return db_service.create_test(
            lesson.id,
            "หลังเรียน",
            TestType.POST_TEST,
            questions=[
                {"question": "ก", "options": ["ก", "ข"], "correct_answer": 0},
                {"question": "ข", "options": ["ก", "ข"], "correct_answer": 1},
            ],
        )

    def test_list_hides_answer_key(self, client, student, post_test):
        data = client.get(f"/api/students/{student.id}/tests").json()["data"]

        assert len(data) == 1
        assert data[0]["type"] == "POST_TEST"
        assert data[0]["attempted"] is False
        assert all("correct_answer" not in q for q in data[0]["questions"])

    def test_submit_and_retry(self, client, student, post_test):
        first_q, second_q = [q["id"] for q in client.get(
            f"/api/students/{student.id}/tests"
        ).json()["data"][0]["questions"]]

        url = f"/api/students/{student.id}/tests/{post_test.id}/submit"
        half = client.post(url, json={"answers": {first_q: 0, second_q: 0}}).json()["data"]
        full = client.post(url, json={"answers": {first_q: 0, second_q: 1}}).json()["data"]

        assert (half["score"], half["is_passed"], half["attempt_number"]) == (50, False, 1)
        assert (full["score"], full["is_passed"], full["attempt_number"]) == (100, True, 2)
        assert full["stars"] == 3

    def test_malformed_answers_rejected(self, client, student, post_test):
        response = client.post(
            f"/api/students/{student.id}/tests/{post_test.id}/submit",
            json={"answers": [0, 1]},
        )

        assert response.status_code == 400
        assert response.json()["success"] is False


class TestGameRoutes:
    """Game play recording over HTTP"""

    def test_submit_game(self, client, db_service, student, make_lesson):
        game = db_service.create_game(make_lesson(1).id, "จับคู่", "matching")

        response = client.post(
            f"/api/students/{student.id}/games/{game.id}/submit",
            json={"score": 100, "level": 2, "timeSpent": 30},
        )

        assert response.status_code == 200
        assert response.json()["data"]["is_passed"] is True

        games = client.get(f"/api/students/{student.id}/games").json()["data"]
        assert games[0]["attempted"] is True
        assert games[0]["last_attempt"]["score"] == 100

    def test_out_of_range_score(self, client, db_service, student, make_lesson):
        game = db_service.create_game(make_lesson(1).id, "จับคู่", "matching")

        response = client.post(
            f"/api/students/{student.id}/games/{game.id}/submit", json={"score": 150}
        )

        assert response.status_code == 400
        assert response.json()["message"] == "คะแนนเกมไม่ถูกต้อง"


class TestProgressAndNotifications:
    def test_progress_and_notifications(self, client, student, make_lesson):
        lesson = make_lesson(1)
        client.post(f"/api/students/{student.id}/lessons/{lesson.id}/complete")

        progress = client.get(f"/api/students/{student.id}/progress").json()["data"]
        assert progress["lessons"][0]["lesson"]["id"] == lesson.id

        notifications = client.get(
            f"/api/students/{student.id}/notifications", params={"unread_only": True}
        ).json()["data"]
        assert len(notifications) == 1
        assert notifications[0]["type"] == "SUCCESS"

        notification_id = notifications[0]["id"]
        response = client.put(
            f"/api/students/{student.id}/notifications/{notification_id}/read"
        )
        assert response.json()["data"]["is_read"] is True

        unread = client.get(
            f"/api/students/{student.id}/notifications", params={"unread_only": True}
        ).json()["data"]
        assert unread == []

    def test_unknown_notification(self, client, student):
        response = client.put(f"/api/students/{student.id}/notifications/{'1' * 32}/read")

        assert response.status_code == 404


class TestWritingRoutes:
    """Handwriting verification over HTTP"""

    def test_save_and_detect(self, client, student, canvas_data_url):
        response = client.post(
            f"/api/students/{student.id}/writing/save-and-detect",
            json={"imageData": canvas_data_url, "targetWord": "ก"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["is_correct"] is True
        assert data["method"] == "Gemini"
        assert data["attempt_id"]
        assert data["image_url"].startswith("/uploads/writing/")

        history = client.get(f"/api/students/{student.id}/writing/history").json()["data"]
        assert history["total"] == 1
        assert history["attempts"][0]["id"] == data["attempt_id"]

    def test_empty_canvas(self, client, student, mock_verifier):
        response = client.post(
            f"/api/students/{student.id}/writing/save-and-detect",
            json={"imageData": "data:image/png;base64,AAAA", "targetWord": "ก"},
        )

        assert response.status_code == 400
        assert response.json()["message"] == "กรุณาเขียนอักษรบนกระดานก่อนตรวจสอบ"
        mock_verifier.detect.assert_not_called()

    def test_missing_target_word(self, client, student, canvas_data_url):
        response = client.post(
            f"/api/students/{student.id}/writing/save-and-detect",
            json={"imageData": canvas_data_url},
        )

        assert response.status_code == 400
        assert response.json()["message"] == "กรุณาระบุคำที่ต้องการตรวจสอบ"

    def test_vision_timeout(self, client, student, mock_verifier, canvas_data_url):
        mock_verifier.detect.side_effect = VisionNetworkError("timed out")

        response = client.post(
            f"/api/students/{student.id}/writing/save-and-detect",
            json={"imageData": canvas_data_url, "targetWord": "ก"},
        )

        assert response.status_code == 504
        assert response.json()["success"] is False

    def test_legacy_detect(self, client, mock_verifier, canvas_data_url):
        mock_verifier.detect.return_value = RawVerdict("ข", True, 90, "ทับเส้นประ")

        response = client.post(
            "/api/writing/detect", json={"imageData": canvas_data_url, "targetWord": "ก"}
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["is_correct"] is False
        assert data["detected_text"] == "ข"
        assert "attempt_id" not in data
