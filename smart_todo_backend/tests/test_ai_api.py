from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from src.api.llm import get_generator
from src.api.main import app
from src.api.repositories import InMemoryRepository, get_repository
from src.api.schemas import TodoCreate
from src.api.utils import get_now

client = TestClient(app)

NOW = datetime(2024, 1, 1, 10, 0)
EXTRACT = "/ai/extract-task"
ANALYZE = "/ai/analyze-todos"


@pytest.fixture
def use_generator(repo, generator_factory):
    """Install a fake model and a pinned clock; returns a setter for the fake's behavior."""

    def install(response=None, error=None):
        generator = generator_factory(response=response, error=error)
        app.dependency_overrides[get_generator] = lambda: generator
        return generator

    app.dependency_overrides[get_now] = lambda: NOW
    yield install
    app.dependency_overrides.pop(get_generator, None)
    app.dependency_overrides.pop(get_now, None)


class TestExtractTask:
    def test_success_envelope(self, use_generator, headers):
        generator = use_generator(
            response={
                "title": "Client call",
                "due_date": "2024-01-02",
                "due_time": "14:00",
                "priority": "high",
                "category": ["work"],
            }
        )
        res = client.post(EXTRACT, json={"text": "tomorrow afternoon important client call"}, headers=headers())
        assert res.status_code == 200
        body = res.json()
        assert body["success"] is True
        assert body["data"] == {
            "title": "Client call",
            "description": None,
            "due_date": "2024-01-02",
            "due_time": "14:00",
            "priority": "high",
            "category": ["work"],
        }
        assert "Tomorrow: 2024-01-02" in generator.calls[0][0]

    def test_save_creates_todo_for_caller(self, use_generator, repo, headers):
        use_generator(
            response={
                "title": "Client call",
                "due_date": "2024-01-02",
                "due_time": "14:00",
                "priority": "high",
                "category": ["work"],
            }
        )
        res = client.post(
            EXTRACT, json={"text": "tomorrow afternoon important client call", "save": True}, headers=headers()
        )
        assert res.status_code == 200
        todo = res.json()["todo"]
        assert todo["title"] == "Client call"
        assert todo["due_date"] == "2024-01-02T14:00:00"
        assert todo["priority"] == "high"
        assert todo["categories"] == ["work"]
        assert todo["owner"] == "user-1"
        assert todo["status"] == "in-progress"
        assert [t["id"] for t in repo.list("user-1")] == [todo["id"]]

    def test_without_save_nothing_is_stored(self, use_generator, repo, headers):
        use_generator(response={"title": "Gym", "due_date": "2024-01-01", "due_time": "18:00", "priority": "low"})
        res = client.post(EXTRACT, json={"text": "gym tonight"}, headers=headers())
        assert res.status_code == 200
        assert res.json()["todo"] is None
        assert repo.list("user-1") == []

    def test_save_must_be_boolean(self, use_generator, repo, headers):
        generator = use_generator(response={})
        res = client.post(EXTRACT, json={"text": "call mom", "save": "yes"}, headers=headers())
        assert res.status_code == 400
        assert res.json() == {"error": "'save' must be a boolean."}
        assert generator.calls == []
        assert repo.list("user-1") == []

    def test_requires_session(self, use_generator):
        use_generator(response={})
        res = client.post(EXTRACT, json={"text": "call mom"})
        assert res.status_code == 401
        assert res.json() == {"error": "Not authenticated"}

    def test_malformed_json(self, use_generator, headers):
        use_generator(response={})
        res = client.post(
            EXTRACT,
            content="{not json",
            headers={**headers(), "Content-Type": "application/json"},
        )
        assert res.status_code == 400
        assert res.json() == {"error": "Malformed request body. Send a JSON object."}

    def test_missing_and_non_string_text(self, use_generator, headers):
        generator = use_generator(response={})
        missing = client.post(EXTRACT, json={}, headers=headers())
        assert missing.status_code == 400
        assert missing.json() == {"error": "Input text is required. Include a 'text' field."}

        wrong_type = client.post(EXTRACT, json={"text": 42}, headers=headers())
        assert wrong_type.status_code == 400
        assert wrong_type.json() == {"error": "Input text must be a string."}
        assert generator.calls == []

    def test_input_too_short(self, use_generator, headers):
        use_generator(response={})
        res = client.post(EXTRACT, json={"text": " a "}, headers=headers())
        assert res.status_code == 400
        assert "too short" in res.json()["error"]

    def test_rate_limit(self, use_generator, headers):
        use_generator(error=RuntimeError("rate limit exceeded"))
        res = client.post(EXTRACT, json={"text": "call mom"}, headers=headers())
        assert res.status_code == 429
        assert "rate limit" in res.json()["error"]

    def test_missing_api_key(self, repo, headers, monkeypatch):
        monkeypatch.delenv("GOOGLE_GENERATIVE_AI_API_KEY", raising=False)
        res = client.post(EXTRACT, json={"text": "call mom"}, headers=headers())
        assert res.status_code == 500
        assert res.json() == {"error": "GOOGLE_GENERATIVE_AI_API_KEY is not configured."}


class TestAnalyzeTodos:
    def test_success_envelope(self, use_generator, repo, headers):
        repo.create("user-1", TodoCreate(title="Standup", due_date=datetime(2024, 1, 1, 9, 30), priority="high"))
        repo.create("user-2", TodoCreate(title="Someone else's", due_date=datetime(2024, 1, 1, 9, 30)))
        answer = {
            "summary": "One task today.",
            "urgentTasks": ["Standup"],
            "insights": ["a", "b", "c"],
            "recommendations": ["x", "y", "z"],
        }
        generator = use_generator(response=answer)

        res = client.post(ANALYZE, json={"period": "today"}, headers=headers())

        assert res.status_code == 200
        assert res.json() == {"success": True, "data": answer}
        prompt = generator.calls[0][0]
        assert "Standup" in prompt
        assert "Someone else's" not in prompt

    def test_empty_period_returns_canned_result(self, use_generator, headers):
        generator = use_generator(error=RuntimeError("must not be called"))
        res = client.post(ANALYZE, json={"period": "week"}, headers=headers())
        assert res.status_code == 200
        data = res.json()["data"]
        assert data["summary"] == "There are no tasks for this week."
        assert data["urgentTasks"] == []
        assert generator.calls == []

    @pytest.mark.parametrize("body", [{}, {"period": "month"}, {"period": 7}])
    def test_invalid_period(self, use_generator, headers, body):
        use_generator(response={})
        res = client.post(ANALYZE, json=body, headers=headers())
        assert res.status_code == 400
        assert "period" in res.json()["error"]

    def test_requires_session(self, use_generator, token_factory):
        use_generator(response={})
        expired = token_factory(expires_in=timedelta(minutes=-5))
        res = client.post(ANALYZE, json={"period": "today"}, headers={"Authorization": f"Bearer {expired}"})
        assert res.status_code == 401
        assert res.json() == {"error": "JWT expired"}

    def test_store_failure(self, use_generator, headers):
        class UnavailableRepository(InMemoryRepository):
            def list(self, owner):
                raise RuntimeError("database is locked")

        use_generator(response={})
        app.dependency_overrides[get_repository] = lambda: UnavailableRepository()
        res = client.post(ANALYZE, json={"period": "today"}, headers=headers())
        assert res.status_code == 500
        assert res.json() == {"error": "Failed to load todos for analysis."}

    def test_model_not_found(self, use_generator, repo, headers):
        repo.create("user-1", TodoCreate(title="Anything"))
        use_generator(error=RuntimeError("404 models/gemini-x is not found"))
        res = client.post(ANALYZE, json={"period": "today"}, headers=headers())
        assert res.status_code == 404
