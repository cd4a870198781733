"""HTTP tests for the chat, conversation and analysis routes."""
from __future__ import annotations

from types import SimpleNamespace

import pytest

from api.shared.exceptions import StorageUnavailableError


class TestChatEndpoint:
    def test_chat_returns_reply_and_stores_exchange(self, client):
        response = client.post("/api/chat", json={"message": "hello", "conversationId": "c1"})
        assert response.status_code == 200
        body = response.json()
        assert body["content"] == "Hi there!"
        assert body["conversationId"] == "c1"
        assert body["messageId"]

        session = client.get("/api/conversation/c1").json()
        assert [(m["role"], m["content"]) for m in session["messages"]] == [
            ("user", "hello"),
            ("assistant", "Hi there!"),
        ]
        assert session["messages"][1]["id"] == body["messageId"]

    @pytest.mark.parametrize(
        "payload",
        [{"conversationId": "c1"}, {"message": "hi"}, {"message": "", "conversationId": "c1"}],
    )
    def test_missing_fields_are_rejected(self, client, payload):
        response = client.post("/api/chat", json=payload)
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    @pytest.mark.parametrize("kwargs", [{}, {"content": "not json"}, {"json": ["a"]}])
    def test_malformed_body_is_400(self, client, kwargs):
        response = client.post("/api/chat", **kwargs)
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_model_failure_still_returns_200(self, client, llm):
        llm.error = RuntimeError("upstream down")
        response = client.post("/api/chat", json={"message": "hello", "conversationId": "c1"})
        assert response.status_code == 200
        assert response.json()["content"].startswith("I encountered an error")

    def test_storage_failure_is_500(self, client, storage, monkeypatch):
        async def broken(key):
            raise StorageUnavailableError("gone")

        monkeypatch.setattr(storage, "get", broken)
        response = client.post("/api/chat", json={"message": "hello", "conversationId": "c1"})
        assert response.status_code == 500
        assert response.json()["detail"] == "Internal server error"


class TestConversationEndpoints:
    def test_get_creates_empty_session(self, client):
        body = client.get("/api/conversation/new-one").json()
        assert body["id"] == "new-one"
        assert body["messages"] == []
        assert body["createdAt"] == body["updatedAt"]

    def test_missing_id_is_rejected(self, client):
        for method in ("get", "post", "put", "delete"):
            response = getattr(client, method)("/api/conversation/")
            assert response.status_code == 400
            assert response.json()["detail"] == "Missing conversation ID"

    def test_append_message(self, client):
        response = client.post(
            "/api/conversation/c1",
            json={"message": {"role": "user", "content": "note to self"}},
        )
        assert response.status_code == 200
        messages = response.json()["messages"]
        assert messages[0]["content"] == "note to self"
        assert messages[0]["id"]
        assert messages[0]["timestamp"]

    def test_append_without_message_is_rejected(self, client):
        assert client.post("/api/conversation/c1", json={}).status_code == 400

    def test_append_message_without_role_is_rejected(self, client):
        response = client.post("/api/conversation/c1", json={"message": {"content": "x"}})
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_put_missing_conversation_is_404(self, client):
        response = client.put("/api/conversation/ghost", json={"title": "x"})
        assert response.status_code == 404

    def test_put_updates_title_and_metadata(self, client):
        client.get("/api/conversation/c1")
        response = client.put(
            "/api/conversation/c1", json={"title": "Trip", "metadata": {"pinned": True}}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["title"] == "Trip"
        assert body["metadata"] == {"pinned": True}

    def test_delete_is_idempotent(self, client):
        client.post("/api/chat", json={"message": "hello", "conversationId": "c1"})
        for _ in range(2):
            response = client.delete("/api/conversation/c1")
            assert response.status_code == 200
            assert response.json() == {"success": True, "conversationId": "c1"}

        assert client.get("/api/conversation/c1").json()["messages"] == []

    def test_list_orders_by_recent_activity(self, client):
        client.get("/api/conversation/a")
        client.get("/api/conversation/b")
        client.post(
            "/api/conversation/a", json={"message": {"role": "user", "content": "bump"}}
        )
        ids = [c["id"] for c in client.get("/api/conversations").json()["conversations"]]
        assert ids == ["a", "b"]

    def test_generate_title(self, client, llm):
        llm.replies = ["Hi there!", "Greeting Exchange"]
        client.post("/api/chat", json={"message": "hello", "conversationId": "c1"})

        response = client.post("/api/conversation/c1/title")
        assert response.status_code == 200
        assert response.json() == {"conversationId": "c1", "title": "Greeting Exchange"}
        assert client.get("/api/conversation/c1").json()["title"] == "Greeting Exchange"


class TestAnalyzeEndpoint:
    def test_inline_analysis(self, client, llm):
        client.post("/api/chat", json={"message": "hello", "conversationId": "c1"})
        llm.replies = ["A short greeting."]

        response = client.post(
            "/api/analyze", json={"conversationId": "c1", "analysisType": "summary"}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["conversationId"] == "c1"
        assert body["analysis"]["type"] == "summary"
        assert body["analysis"]["result"] == "A short greeting."
        assert llm.calls[-1]["messages"][1]["content"] == "user: hello\nassistant: Hi there!"

    @pytest.mark.parametrize(
        "payload",
        [
            {"conversationId": "c1"},
            {"analysisType": "summary"},
            {"conversationId": "c1", "analysisType": "poetry"},
        ],
    )
    def test_invalid_requests_are_rejected(self, client, payload):
        assert client.post("/api/analyze", json=payload).status_code == 400

    def test_model_failure_is_500(self, client, llm):
        llm.error = RuntimeError("upstream down")
        response = client.post(
            "/api/analyze", json={"conversationId": "c1", "analysisType": "topics"}
        )
        assert response.status_code == 500

    def test_delete_after_analyses_leaves_no_transcript(self, client, storage, llm):
        llm.replies = ["noted"]
        client.post("/api/chat", json={"message": "secret", "conversationId": "c1"})
        for _ in range(5):
            response = client.post(
                "/api/analyze", json={"conversationId": "c1", "analysisType": "summary"}
            )
            assert response.status_code == 200

        client.delete("/api/conversation/c1")
        assert storage._data == {}

    def test_background_analysis_is_enqueued(self, client, monkeypatch):
        from workers import tasks

        queued = []

        def fake_delay(*args):
            queued.append(args)
            return SimpleNamespace(id="task-123")

        monkeypatch.setattr(tasks.run_analysis_workflow, "delay", fake_delay)
        response = client.post(
            "/api/analyze",
            json={"conversationId": "c1", "analysisType": "sentiment", "background": True},
        )
        assert response.status_code == 202
        assert response.json()["taskId"] == "task-123"
        assert response.json()["status"] == "queued"
        assert queued == [("c1", "sentiment")]


class TestServiceRoutes:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_root(self, client):
        assert client.get("/").status_code == 200

    def test_cors_allows_any_origin(self, client):
        response = client.options(
            "/api/chat",
            headers={
                "Origin": "https://example.org",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"

    def test_unknown_route_is_404(self, client):
        assert client.get("/api/nothing-here").status_code == 404
