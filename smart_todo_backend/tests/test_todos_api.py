from datetime import datetime, timedelta

from fastapi.testclient import TestClient

from src.api.main import app

client = TestClient(app)

BASE = "/api/v1/todos/"


def create_todo_payload(
    title="Test Task",
    description="Do something",
    completed=False,
    due_date=None,
    priority=None,
    categories=None,
):
    payload = {
        "title": title,
        "description": description,
        "completed": completed,
    }
    if due_date is not None:
        payload["due_date"] = due_date
    if priority is not None:
        payload["priority"] = priority
    if categories is not None:
        payload["categories"] = categories
    return payload


def assert_todo_shape(todo: dict):
    for key in ["id", "owner", "title", "completed", "created_at", "updated_at", "categories", "status"]:
        assert key in todo
    assert "description" in todo
    assert "due_date" in todo
    assert "priority" in todo
    assert isinstance(todo["id"], str)
    assert isinstance(todo["title"], str)
    assert isinstance(todo["completed"], bool)
    assert isinstance(todo["categories"], list)
    assert todo["status"] in ("in-progress", "done", "overdue")
    datetime.fromisoformat(todo["created_at"])
    datetime.fromisoformat(todo["updated_at"])
    if todo["due_date"] is not None:
        datetime.fromisoformat(todo["due_date"])


def create(headers, **kwargs):
    res = client.post(BASE, json=create_todo_payload(**kwargs), headers=headers)
    assert res.status_code == 201, res.text
    return res.json()


class TestHealth:
    def test_health_check(self):
        res = client.get("/")
        assert res.status_code == 200
        data = res.json()
        assert data["message"] == "Healthy"
        assert data["backend"] in ("memory", "sqlite")


class TestAuthentication:
    def test_missing_token_is_rejected(self, repo):
        res = client.get(BASE)
        assert res.status_code == 401
        assert res.json()["detail"] == "Not authenticated"
        assert res.headers["WWW-Authenticate"] == "Bearer"

    def test_expired_token_is_rejected(self, repo, token_factory):
        token = token_factory("user-1", expires_in=timedelta(seconds=-30))
        res = client.get(BASE, headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401
        assert res.json()["detail"] == "JWT expired"

    def test_token_signed_with_other_secret_is_rejected(self, repo, token_factory):
        token = token_factory("user-1", secret="another-secret-that-is-long-enough-000000")
        res = client.get(BASE, headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 401
        assert res.json()["detail"] == "Invalid authentication credentials"


class TestTodosCRUD:
    def test_create_todo_minimal(self, repo, headers):
        todo = create(headers(), title="Buy milk", description=None)
        assert_todo_shape(todo)
        assert todo["title"] == "Buy milk"
        assert todo["owner"] == "user-1"
        assert todo["description"] is None
        assert todo["completed"] is False
        assert todo["priority"] is None
        assert todo["categories"] == []
        assert todo["status"] == "in-progress"

    def test_create_todo_with_all_fields(self, repo, headers):
        todo = create(
            headers(),
            title="Pay bills",
            description="Electricity",
            due_date="2099-12-25",
            priority="high",
            categories=["personal", " personal ", "finance"],
        )
        assert_todo_shape(todo)
        assert todo["due_date"].startswith("2099-12-25")
        assert todo["priority"] == "high"
        assert todo["categories"] == ["personal", "finance"]

    def test_owner_in_payload_is_ignored(self, repo, headers):
        payload = create_todo_payload(title="Sneaky")
        payload["owner"] = "someone-else"
        res = client.post(BASE, json=payload, headers=headers("user-1"))
        assert res.status_code == 201
        assert res.json()["owner"] == "user-1"

    def test_get_todo_and_not_found(self, repo, headers):
        todo = create(headers(), title="Read book")
        tid = todo["id"]

        res_get = client.get(f"{BASE}{tid}", headers=headers())
        assert res_get.status_code == 200
        assert res_get.json()["title"] == "Read book"

        res_404 = client.get(f"{BASE}does-not-exist", headers=headers())
        assert res_404.status_code == 404
        assert res_404.json()["detail"] == "Todo not found"

    def test_put_replace_todo(self, repo, headers):
        tid = create(headers(), title="Initial", description="A", priority="low", categories=["x"])["id"]

        new_payload = create_todo_payload(title="Replaced", description=None, completed=True, due_date="2100-01-01")
        res_put = client.put(f"{BASE}{tid}", json=new_payload, headers=headers())
        assert res_put.status_code == 200
        updated = res_put.json()
        assert updated["id"] == tid
        assert updated["title"] == "Replaced"
        assert updated["description"] is None
        assert updated["completed"] is True
        assert updated["priority"] is None
        assert updated["categories"] == []
        assert updated["due_date"].startswith("2100-01-01")
        assert updated["status"] == "done"

        res_put_nf = client.put(f"{BASE}missing", json=new_payload, headers=headers())
        assert res_put_nf.status_code == 404
        assert res_put_nf.json()["detail"] == "Todo not found"

    def test_patch_partial_update(self, repo, headers):
        created = create(headers(), title="Partial", description="X", priority="medium")
        tid = created["id"]

        res_patch = client.patch(f"{BASE}{tid}", json={"title": "Partial Updated", "completed": True}, headers=headers())
        assert res_patch.status_code == 200
        patched = res_patch.json()
        assert patched["title"] == "Partial Updated"
        assert patched["completed"] is True
        assert patched["description"] == "X"
        assert patched["priority"] == "medium"
        assert datetime.fromisoformat(patched["updated_at"]) >= datetime.fromisoformat(created["updated_at"])
        assert patched["created_at"] == created["created_at"]

        res_patch_nf = client.patch(f"{BASE}missing", json={"title": "Nope"}, headers=headers())
        assert res_patch_nf.status_code == 404

    def test_patch_can_clear_priority(self, repo, headers):
        tid = create(headers(), title="Clear me", priority="high")["id"]
        res = client.patch(f"{BASE}{tid}", json={"priority": None}, headers=headers())
        assert res.status_code == 200
        assert res.json()["priority"] is None

    def test_patch_null_completed_keeps_state(self, repo, headers):
        tid = create(headers(), title="Finished", completed=True)["id"]
        res = client.patch(f"{BASE}{tid}", json={"completed": None}, headers=headers())
        assert res.status_code == 200
        assert res.json()["completed"] is True
        assert repo.get("user-1", tid)["completed"] is True

    def test_toggle_complete(self, repo, headers):
        created = create(headers(), title="Toggle", description="keep", priority="low")
        tid = created["id"]

        res = client.patch(f"{BASE}{tid}/complete", json={"completed": True}, headers=headers())
        assert res.status_code == 200
        body = res.json()
        assert body["completed"] is True
        assert body["title"] == "Toggle"
        assert body["description"] == "keep"
        assert body["priority"] == "low"

        res_back = client.patch(f"{BASE}{tid}/complete", json={"completed": False}, headers=headers())
        assert res_back.json()["completed"] is False

    def test_delete_requires_confirmation(self, repo, headers):
        tid = create(headers(), title="ToDelete")["id"]

        res_unconfirmed = client.delete(f"{BASE}{tid}", headers=headers())
        assert res_unconfirmed.status_code == 400
        assert client.get(f"{BASE}{tid}", headers=headers()).status_code == 200

        res_del = client.delete(f"{BASE}{tid}?confirm=true", headers=headers())
        assert res_del.status_code == 204
        assert res_del.text == ""

        assert client.get(f"{BASE}{tid}", headers=headers()).status_code == 404
        res_del_again = client.delete(f"{BASE}{tid}?confirm=true", headers=headers())
        assert res_del_again.status_code == 404
        assert res_del_again.json()["detail"] == "Todo not found"


class TestOwnership:
    def test_other_owner_cannot_see_or_change_todo(self, repo, headers):
        todo = create(headers("alice"), title="Alice's secret", priority="high")
        tid = todo["id"]

        assert client.get(BASE, headers=headers("bob")).json() == []
        assert client.get(f"{BASE}{tid}", headers=headers("bob")).status_code == 404

        res_patch = client.patch(f"{BASE}{tid}", json={"title": "Hijacked"}, headers=headers("bob"))
        assert res_patch.status_code == 404
        res_toggle = client.patch(f"{BASE}{tid}/complete", json={"completed": True}, headers=headers("bob"))
        assert res_toggle.status_code == 404
        res_del = client.delete(f"{BASE}{tid}?confirm=true", headers=headers("bob"))
        assert res_del.status_code == 404

        still = client.get(f"{BASE}{tid}", headers=headers("alice")).json()
        assert still["title"] == "Alice's secret"
        assert still["completed"] is False


class TestListFilteringSorting:
    def seed(self, headers):
        now = datetime.now()
        create(headers, title="Done thing", completed=True, priority="low")
        create(headers, title="Late report", due_date=(now - timedelta(days=1)).isoformat(), priority="high")
        create(headers, title="Future call", description="Client kickoff",
               due_date=(now + timedelta(days=1)).isoformat(), priority="medium")
        create(headers, title="apple errand")

    def test_default_sort_is_newest_first(self, repo, headers):
        self.seed(headers())
        items = client.get(BASE, headers=headers()).json()
        created_ts = [datetime.fromisoformat(t["created_at"]) for t in items]
        assert created_ts == sorted(created_ts, reverse=True)
        assert len(items) == 4

    def test_status_filters(self, repo, headers):
        self.seed(headers())
        done = client.get(f"{BASE}?status=done", headers=headers()).json()
        overdue = client.get(f"{BASE}?status=overdue", headers=headers()).json()
        in_progress = client.get(f"{BASE}?status=in-progress", headers=headers()).json()
        assert [t["title"] for t in done] == ["Done thing"]
        assert [t["title"] for t in overdue] == ["Late report"]
        assert {t["title"] for t in in_progress} == {"Future call", "apple errand"}
        assert all(t["status"] == "overdue" for t in overdue)

    def test_search_matches_title_and_description(self, repo, headers):
        self.seed(headers())
        by_title = client.get(f"{BASE}?q=REPORT", headers=headers()).json()
        assert [t["title"] for t in by_title] == ["Late report"]
        by_desc = client.get(f"{BASE}?q=kickoff", headers=headers()).json()
        assert [t["title"] for t in by_desc] == ["Future call"]

    def test_priority_filter_and_sort(self, repo, headers):
        self.seed(headers())
        high = client.get(f"{BASE}?priority=high", headers=headers()).json()
        assert [t["title"] for t in high] == ["Late report"]

        by_priority = client.get(f"{BASE}?sort=priority", headers=headers()).json()
        assert by_priority[0]["title"] == "Late report"
        assert by_priority[1]["title"] == "Future call"

        by_due = client.get(f"{BASE}?sort=due_date", headers=headers()).json()
        assert [t["title"] for t in by_due[:2]] == ["Late report", "Future call"]
        assert all(t["due_date"] is None for t in by_due[2:])

        by_title = client.get(f"{BASE}?sort=title", headers=headers()).json()
        assert [t["title"] for t in by_title] == ["apple errand", "Done thing", "Future call", "Late report"]

    def test_invalid_filter_value(self, repo, headers):
        res = client.get(f"{BASE}?status=later", headers=headers())
        assert res.status_code == 422
        assert res.json()["error"] == "ValidationError"


class TestValidationErrors:
    def test_create_validation_error_title_empty(self, repo, headers):
        res = client.post(BASE, json={"title": "  ", "description": "x"}, headers=headers())
        assert res.status_code == 422
        body = res.json()
        assert body.get("error") == "ValidationError"
        assert body.get("message") == "Request validation failed"
        assert isinstance(body.get("detail"), list)

    def test_create_validation_error_bad_priority(self, repo, headers):
        res = client.post(BASE, json={"title": "ok", "priority": "urgent"}, headers=headers())
        assert res.status_code == 422

    def test_patch_validation_error_bad_due_date(self, repo, headers):
        tid = create(headers(), title="Due date bad")["id"]
        res_patch = client.patch(f"{BASE}{tid}", json={"due_date": "not-a-date"}, headers=headers())
        assert res_patch.status_code == 422
        body = res_patch.json()
        assert body.get("error") == "ValidationError"
        assert isinstance(body.get("detail"), list)

    def test_validator_message_is_serialized(self, repo, headers):
        tid = create(headers(), title="Keep title")["id"]
        res = client.patch(f"{BASE}{tid}", json={"title": "   "}, headers=headers())
        assert res.status_code == 422
        detail = res.json()["detail"]
        assert detail[0]["loc"] == ["body", "title"]
        assert "title" in detail[0]["msg"]
