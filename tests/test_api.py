import pytest
import requests
from unittest.mock import MagicMock

from ctxtracker.api import ApiClient
from ctxtracker.errors import ApiError


def make_response(status=200, payload=None, reason="OK"):
    response = MagicMock()
    response.status_code = status
    response.ok = 200 <= status < 300
    response.reason = reason
    response.content = b"" if payload is None else b"{}"
    response.json.return_value = payload
    return response


@pytest.fixture
def http():
    """A fake requests.Session"""
    session = MagicMock()
    session.headers = {}
    return session


@pytest.fixture
def client(http):
    return ApiClient(base_url="http://localhost:5001/", timeout=3, session=http)


def test_json_header_and_base_url(client, http):
    """Test the client sends JSON to the configured base URL"""
    assert http.headers["Content-Type"] == "application/json"
    assert client.base_url == "http://localhost:5001"


def test_create_context(client, http):
    http.request.return_value = make_response(payload={"context_id": "ctx-1", "name": "Work"})
    context = client.create_context("Work", "Day job")

    assert context.context_id == "ctx-1"
    assert context.name == "Work"
    http.request.assert_called_once_with(
        "POST", "http://localhost:5001/context",
        json={"name": "Work", "description": "Day job"}, timeout=3,
    )


def test_start_and_end_session(client, http):
    http.request.return_value = make_response(
        payload={"session_id": 7, "context_id": "ctx-1", "start_time": "2025-01-01T09:00:00"}
    )
    session = client.start_session("ctx-1")
    assert session.session_id == 7
    assert session.is_running
    http.request.assert_called_with(
        "POST", "http://localhost:5001/session", json={"context_id": "ctx-1"}, timeout=3,
    )

    http.request.return_value = make_response(payload=None)
    assert client.end_session(7) is None
    http.request.assert_called_with("POST", "http://localhost:5001/session/7/end", json=None, timeout=3)


def test_get_session_events(client, http):
    http.request.return_value = make_response(payload=[
        {"event_id": 1, "session_id": 7, "timestamp": "2025-01-01T09:05:00",
         "event_type": "note", "event_data": {"text": "hi"}},
    ])
    events = client.get_session_events(7)
    assert len(events) == 1
    assert events[0].event_type == "note"
    assert events[0].event_data == {"text": "hi"}


def test_generate_summary(client, http):
    http.request.return_value = make_response(payload={
        "overview": "Worked on storage",
        "key_topics": ["json"],
        "learning_highlights": [],
        "resources_used": ["docs"],
        "conclusion": "Done",
    })
    summary = client.generate_summary(7)
    assert summary.overview == "Worked on storage"
    assert summary.key_topics == ["json"]
    assert summary.conclusion == "Done"


def test_get_active_sessions(client, http):
    http.request.return_value = make_response(payload={
        "active_sessions": [{"session_id": 3, "context_id": "c", "start_time": "2025-01-01T10:00:00"}],
        "count": 1,
    })
    sessions, count = client.get_active_sessions()
    assert count == 1
    assert sessions[0].session_id == 3


def test_get_contexts(client, http):
    http.request.return_value = make_response(payload=[
        {"context_id": "a", "name": "Alpha"},
        {"context_id": "b", "name": "Beta", "description": "second"},
    ])
    contexts = client.get_contexts()
    assert [c.context_id for c in contexts] == ["a", "b"]
    assert contexts[1].description == "second"


def test_error_status_raises_api_error(client, http):
    """Test non-2xx responses carry the status text"""
    http.request.return_value = make_response(status=404, reason="NOT FOUND")
    with pytest.raises(ApiError) as excinfo:
        client.generate_summary(99)
    assert str(excinfo.value) == "API Error: NOT FOUND"
    assert excinfo.value.status_code == 404


def test_connection_error_raises_api_error(client, http):
    http.request.side_effect = requests.ConnectionError("refused")
    with pytest.raises(ApiError):
        client.get_active_sessions()


def test_empty_body_raises_api_error(client, http):
    """Test an empty create-context reply is reported as an API error"""
    http.request.return_value = make_response(payload=None)
    with pytest.raises(ApiError, match="unexpected response from /context"):
        client.create_context("Work")


def test_malformed_bodies_raise_api_error(client, http):
    http.request.return_value = make_response(payload={})
    with pytest.raises(ApiError, match="unexpected response from /session"):
        client.start_session("ctx-1")

    http.request.return_value = make_response(payload={"active_sessions": [{"session_id": "abc"}], "count": 1})
    with pytest.raises(ApiError, match="/sessions/active"):
        client.get_active_sessions()

    http.request.return_value = make_response(payload=["not", "a", "summary"])
    with pytest.raises(ApiError, match="/session/7/summary"):
        client.generate_summary(7)

    http.request.return_value = make_response(payload={"event_id": 1})
    with pytest.raises(ApiError, match="/session/7/events"):
        client.get_session_events(7)

    http.request.return_value = make_response(payload=[{"name": "no id"}])
    with pytest.raises(ApiError, match="/context/list"):
        client.get_contexts()
