"""Tests for the HTTP API, run against the shipped sequences."""
import dataclasses
import json

import pytest
from fastapi.testclient import TestClient

import api.main
from api.main import app
from config.settings import StoreConfig, get_settings


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def start(client, **body):
    response = client.post("/api/v1/conversations", json=body)
    assert response.status_code == 200, response.text
    return response.json()


class TestHealthAndSequences:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["sequences"] == 3

    def test_list_sequences(self, client):
        ids = {s["id"] for s in client.get("/api/v1/sequences").json()}
        assert ids == {"welcome", "task_setup", "checkin"}

    def test_get_sequence(self, client):
        body = client.get("/api/v1/sequences/welcome").json()
        assert body["id"] == "welcome"
        assert body["messages"][0]["id"] == 1

    def test_get_unknown_sequence(self, client):
        assert client.get("/api/v1/sequences/nope").status_code == 404

    def test_validate_reports_issues(self, client):
        raw = {"sequenceId": "draft", "name": "Draft", "messages": [
            {"id": 1, "type": "choice", "text": "?"},
            {"id": 2, "text": "orphan"},
        ]}
        body = client.post("/api/v1/sequences/validate", json=raw).json()
        assert not body["valid"]
        assert [e["code"] for e in body["errors"]] == ["NO_CHOICES"]
        assert [w["code"] for w in body["warnings"]] == ["UNREACHABLE_MESSAGE"]

    def test_validate_parse_error(self, client):
        body = client.post("/api/v1/sequences/validate", json={"sequenceId": "x", "messages": [{"text": "no id"}]}).json()
        assert not body["valid"]
        assert body["errors"][0]["code"] == "PARSE_ERROR"


class TestConversationFlow:
    def test_welcome_to_goodbye(self, client):
        view = start(client)
        cid = view["conversation_id"]
        assert view["state"] == "suspended"
        assert view["active_sequence_id"] == "welcome"
        assert view["pending"]["type"] == "textInput"
        assert view["pending"]["placeholder_text"] == "Your first name"
        assert len(view["messages"]) == 3

        view = client.post(f"/api/v1/conversations/{cid}/text", json={"text": "Ana"}).json()
        assert view["messages"][3] == {"id": 1003, "type": "user", "sender": "user", "text": "Ana"}
        assert view["pending"]["id"] == 10
        assert view["pending"]["choices"] == ["Set up my daily task", "Check in on today", "Nothing for now"]

        view = client.post(f"/api/v1/conversations/{cid}/choice", json={"index": 2}).json()
        assert view["state"] == "idle"
        assert view["pending"] is None
        assert view["messages"][-1]["text"] == "No problem. See you later, Ana!"
        answered = [m for m in view["messages"] if m["id"] == 10]
        assert answered[0]["selected_choice_text"] == "Nothing for now"

        data = client.get(f"/api/v1/conversations/{cid}/data").json()
        assert data["user.name"] == "Ana"
        assert data["user.isOnboarded"] is True
        assert data["menu.selection"] == "later"

        events = client.get(f"/api/v1/conversations/{cid}/events").json()
        assert events == [{"event": "onboarding_started", "payload": {"source": "welcome"}}]

    def test_known_user_skips_name_prompt(self, client):
        view = start(client, data={"user.name": "Bo"})
        assert view["pending"]["id"] == 10
        assert view["pending"]["text"] == "Welcome back, Bo. What would you like to do?"

    def test_task_setup_summary(self, client):
        cid = start(client, data={"user.name": "Bo"})["conversation_id"]
        view = client.post(f"/api/v1/conversations/{cid}/choice", json={"index": 0}).json()
        assert view["active_sequence_id"] == "task_setup"
        client.post(f"/api/v1/conversations/{cid}/text", json={"text": "read 10 pages"})
        client.post(f"/api/v1/conversations/{cid}/choice", json={"index": 0})
        view = client.post(f"/api/v1/conversations/{cid}/choice", json={"index": 3}).json()
        texts = [m["text"] for m in view["messages"]]
        assert 'All set: "read 10 pages" on weekdays, done by the evening (before 11pm).' in texts
        data = client.get(f"/api/v1/conversations/{cid}/data").json()
        assert data["task.activeDays"] == [1, 2, 3, 4, 5]
        assert data["task.deadlineTime"] == 4
        assert data["task.setupCount"] == 1

    def test_start_named_sequence(self, client):
        view = start(client, sequence_id="task_setup")
        assert view["active_sequence_id"] == "task_setup"
        assert view["messages"][0]["text"] == "Let's set up your daily task."

    def test_list_and_delete(self, client):
        cid = start(client)["conversation_id"]
        listed = [c["conversation_id"] for c in client.get("/api/v1/conversations").json()]
        assert cid in listed
        assert client.delete(f"/api/v1/conversations/{cid}").json()["status"] == "disposed"
        assert client.get(f"/api/v1/conversations/{cid}").status_code == 404


class TestErrors:
    def test_unknown_sequence(self, client):
        assert client.post("/api/v1/conversations", json={"sequence_id": "nope"}).status_code == 404

    def test_unknown_conversation(self, client):
        assert client.get("/api/v1/conversations/nope").status_code == 404
        assert client.post("/api/v1/conversations/nope/text", json={"text": "x"}).status_code == 404

    def test_wrong_resolution_type(self, client):
        cid = start(client)["conversation_id"]
        response = client.post(f"/api/v1/conversations/{cid}/choice", json={"index": 0})
        assert response.status_code == 409

    def test_empty_text(self, client):
        cid = start(client)["conversation_id"]
        assert client.post(f"/api/v1/conversations/{cid}/text", json={"text": " "}).status_code == 409

    def test_choice_out_of_range(self, client):
        cid = start(client, data={"user.name": "Bo"})["conversation_id"]
        assert client.post(f"/api/v1/conversations/{cid}/choice", json={"index": 7}).status_code == 409


class TestFileBackedConversations:
    @pytest.fixture
    def file_client(self, tmp_path, monkeypatch):
        settings = dataclasses.replace(
            get_settings(),
            store=StoreConfig(backend="file", file_path=str(tmp_path / "store.json")),
        )
        monkeypatch.setattr(api.main, "get_settings", lambda: settings)
        with TestClient(app) as c:
            yield c

    def test_each_conversation_gets_its_own_file(self, file_client, tmp_path):
        first = start(file_client, data={"user.name": "Ana"})["conversation_id"]
        second = start(file_client, data={"user.name": "Bo"})["conversation_id"]

        ana = json.loads((tmp_path / f"store.{first}.json").read_text())
        bo = json.loads((tmp_path / f"store.{second}.json").read_text())
        assert ana["user.name"] == "Ana"
        assert bo["user.name"] == "Bo"
        assert ana["session.visitCount"] == 1
        assert bo["session.visitCount"] == 1
        assert not (tmp_path / "store.json").exists()
