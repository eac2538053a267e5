"""tests/test_api.py

Tests for the FastAPI routes: auth, the streamed chat endpoint and roster
upload.
"""

from __future__ import annotations

# Standard Library
import asyncio
import json
from unittest.mock import patch

# Third-Party Libraries
import pytest
from fastapi.testclient import TestClient

# Local Modules
from lms_agent.api import create_app, encode_fragment
from lms_agent.auth import issue_token
from lms_agent.config import AgentSettings
from lms_agent.engine import EngineReply
from lms_agent.roster import parse_roster
from lms_agent.store import InMemoryStore, User, verify_password

from fakes import FakeEngine, echo_tool_result, tool_call

CHAT_URL = "/api/ai-agent/chat"
UPLOAD_URL = "/api/ai-agent/upload"


def decode_stream(body: str) -> list[str]:
    fragments = []
    for line in body.splitlines():
        assert line.startswith("0:"), line
        fragments.append(json.loads(line[2:]))
    return fragments


class TestEncodeFragment:
    """Test suite for the wire framing."""

    def test_framing(self) -> None:
        assert encode_fragment("Hi") == '0:"Hi"\n'

    def test_escapes(self) -> None:
        assert encode_fragment('\nError: "x"\n') == '0:"\\nError: \\"x\\"\\n"\n'
        assert encode_fragment("café") == '0:"café"\n'


class TestHealthAndLogin:
    """Test suite for /health and /api/auth/login."""

    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "server": "lms-agent", "model": "qwen2.5:7b"}

    def test_login(self, client: TestClient, admin: User) -> None:
        response = client.post(
            "/api/auth/login", json={"email": "ADMIN@college.edu", "password": "admin123"}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["user"] == {
            "id": admin.id,
            "name": "Admin User",
            "email": "admin@college.edu",
            "role": "admin",
        }
        chat = client.post(
            CHAT_URL,
            json={"messages": []},
            headers={"Authorization": f"Bearer {body['token']}"},
        )
        assert chat.status_code == 200

    def test_login_wrong_password(self, client: TestClient, admin: User) -> None:
        response = client.post(
            "/api/auth/login", json={"email": "admin@college.edu", "password": "nope"}
        )

        assert response.status_code == 401
        assert response.json() == {"message": "Invalid email or password"}

    def test_password_check_runs_in_worker_thread(self, client: TestClient, admin: User) -> None:
        with patch.object(asyncio, "to_thread", wraps=asyncio.to_thread) as to_thread:
            response = client.post(
                "/api/auth/login", json={"email": "admin@college.edu", "password": "admin123"}
            )

        assert response.status_code == 200
        assert any(call.args[0] is verify_password for call in to_thread.call_args_list)

    def test_unknown_email_skips_password_check(self, client: TestClient) -> None:
        with patch.object(asyncio, "to_thread", wraps=asyncio.to_thread) as to_thread:
            response = client.post(
                "/api/auth/login", json={"email": "ghost@college.edu", "password": "x"}
            )

        assert response.status_code == 401
        to_thread.assert_not_called()


class TestChatAuth:
    """Test suite for authentication on the chat route."""

    def test_missing_token(self, client: TestClient, fake_engine: FakeEngine) -> None:
        response = client.post(CHAT_URL, json={"messages": []})

        assert response.status_code == 401
        assert response.json()["detail"] == "Not authorized, no token"
        assert fake_engine.chat_calls == []

    def test_bad_token(self, client: TestClient) -> None:
        response = client.post(
            CHAT_URL, json={"messages": []}, headers={"Authorization": "Bearer not-a-jwt"}
        )

        assert response.status_code == 401
        assert response.json()["detail"] == "Not authorized, token failed"

    def test_token_signed_with_other_secret(self, client: TestClient, admin: User) -> None:
        other = AgentSettings(_env_file=None, jwt_secret="other-secret")
        token = issue_token(admin.id, other)

        response = client.post(CHAT_URL, json={"messages": []}, headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    def test_deleted_user(self, client: TestClient, settings: AgentSettings) -> None:
        token = issue_token("no-such-user", settings)

        response = client.post(CHAT_URL, json={"messages": []}, headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Not authorized, user not found"

    def test_student_forbidden(
        self, client: TestClient, store: InMemoryStore, settings: AgentSettings, fake_engine: FakeEngine
    ) -> None:
        student = store.create_user(name="Alice", email="alice@college.edu", password="x", role="student")
        headers = {"Authorization": f"Bearer {issue_token(student.id, settings)}"}

        response = client.post(CHAT_URL, json={"messages": []}, headers=headers)

        assert response.status_code == 403
        assert response.json()["detail"] == "User role 'student' is not authorized to access this route"
        assert fake_engine.chat_calls == []

    def test_professor_allowed(
        self, client: TestClient, professor: User, settings: AgentSettings
    ) -> None:
        headers = {"Authorization": f"Bearer {issue_token(professor.id, settings)}"}

        response = client.post(CHAT_URL, json={"messages": []}, headers=headers)

        assert response.status_code == 200


class TestChatEndpoint:
    """Test suite for POST /api/ai-agent/chat."""

    @pytest.mark.parametrize(
        "payload",
        [{}, {"messages": "hello"}, {"messages": None}, [1, 2]],
    )
    def test_messages_required(
        self, client: TestClient, admin_headers: dict, fake_engine: FakeEngine, payload
    ) -> None:
        response = client.post(CHAT_URL, json=payload, headers=admin_headers)

        assert response.status_code == 400
        assert response.json() == {"message": "Messages array is required"}
        assert fake_engine.chat_calls == []
        assert fake_engine.probe_calls == []

    def test_malformed_json_body(self, client: TestClient, admin_headers: dict) -> None:
        response = client.post(
            CHAT_URL,
            content=b"{not json",
            headers={**admin_headers, "Content-Type": "application/json"},
        )

        assert response.status_code == 400

    def test_message_items_must_be_objects(
        self, client: TestClient, admin_headers: dict, fake_engine: FakeEngine
    ) -> None:
        response = client.post(CHAT_URL, json={"messages": ["hi"]}, headers=admin_headers)

        assert response.status_code == 400
        assert fake_engine.chat_calls == []

    def test_model_unavailable(
        self, client: TestClient, admin_headers: dict, fake_engine: FakeEngine
    ) -> None:
        fake_engine.available = False

        response = client.post(
            CHAT_URL, json={"messages": [{"role": "user", "content": "hi"}]}, headers=admin_headers
        )

        assert response.status_code == 503
        body = response.json()
        assert body["message"] == "Ollama is not available"
        assert body["error"] == "Please ensure Ollama is running with: ollama serve"
        assert body["help"].endswith("ollama pull qwen2.5:7b")
        assert fake_engine.chat_calls == []

    def test_direct_reply_is_streamed(
        self, client: TestClient, admin_headers: dict, fake_engine: FakeEngine
    ) -> None:
        fake_engine.replies = [EngineReply(content="Hi there")]

        response = client.post(
            CHAT_URL, json={"messages": [{"role": "user", "content": "hi"}]}, headers=admin_headers
        )

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert response.headers["cache-control"] == "no-cache"
        fragments = decode_stream(response.text)
        assert fragments == list("Hi there")

    def test_student_count_turn(
        self,
        client: TestClient,
        admin_headers: dict,
        fake_engine: FakeEngine,
        store: InMemoryStore,
    ) -> None:
        for index in range(60):
            store.create_user(
                name=f"Student {index}", email=f"s{index}@college.edu", password="x", role="student"
            )
        fake_engine.replies = [EngineReply(tool_calls=(tool_call("getStudentCount", {}),))]
        fake_engine.responder = echo_tool_result

        response = client.post(
            CHAT_URL,
            json={"messages": [{"role": "user", "content": "How many students are there?"}]},
            headers=admin_headers,
        )

        text = "".join(decode_stream(response.text))
        assert "60" in text
        assert text == "Result: There are currently 60 students in the system."

    def test_unknown_tool_turn(
        self, client: TestClient, admin_headers: dict, fake_engine: FakeEngine
    ) -> None:
        fake_engine.replies = [EngineReply(tool_calls=(tool_call("dropTables"),))]

        response = client.post(
            CHAT_URL, json={"messages": [{"role": "user", "content": "x"}]}, headers=admin_headers
        )

        assert response.status_code == 200
        assert [f.strip() for f in decode_stream(response.text)] == [
            "Error: Function 'dropTables' not found."
        ]

    def test_engine_failure_is_streamed(
        self, client: TestClient, admin_headers: dict, fake_engine: FakeEngine
    ) -> None:
        fake_engine.chat_error = ConnectionError("connection reset")

        response = client.post(
            CHAT_URL, json={"messages": [{"role": "user", "content": "x"}]}, headers=admin_headers
        )

        assert response.status_code == 200
        (fragment,) = decode_stream(response.text)
        assert fragment.startswith("\n\nError: connection reset")


class TestUploadEndpoint:
    """Test suite for POST /api/ai-agent/upload."""

    def test_csv_upload(self, client: TestClient, admin_headers: dict) -> None:
        csv_bytes = b"Name,Email,Section\nJohn Doe,john@college.edu,Section A\nBad Row,not-an-email,\n"

        response = client.post(
            UPLOAD_URL,
            files={"file": ("roster.csv", csv_bytes, "text/csv")},
            headers=admin_headers,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["count"] == 1
        assert body["students"] == [
            {"name": "John Doe", "email": "john@college.edu", "section": "Section A"}
        ]

    def test_no_file(self, client: TestClient, admin_headers: dict) -> None:
        response = client.post(UPLOAD_URL, headers=admin_headers)

        assert response.status_code == 400
        assert response.json() == {"message": "No file uploaded"}

    def test_rejects_other_types(self, client: TestClient, admin_headers: dict) -> None:
        response = client.post(
            UPLOAD_URL,
            files={"file": ("photo.png", b"\x89PNG", "image/png")},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert "Invalid file type" in response.json()["message"]

    def test_roster_is_parsed_in_worker_thread(self, client: TestClient, admin_headers: dict) -> None:
        with patch.object(asyncio, "to_thread", wraps=asyncio.to_thread) as to_thread:
            response = client.post(
                UPLOAD_URL,
                files={"file": ("roster.csv", b"Name,Email\nJohn Doe,john@college.edu\n", "text/csv")},
                headers=admin_headers,
            )

        assert response.status_code == 200
        assert response.json()["count"] == 1
        assert any(call.args[0] is parse_roster for call in to_thread.call_args_list)

    def test_rejects_legacy_excel(self, client: TestClient, admin_headers: dict) -> None:
        response = client.post(
            UPLOAD_URL,
            files={"file": ("roster.xls", b"\xd0\xcf\x11\xe0", "application/vnd.ms-excel")},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert "Invalid file type" in response.json()["message"]

    def test_rejects_large_files(
        self, settings: AgentSettings, store: InMemoryStore, fake_engine: FakeEngine, admin_headers: dict
    ) -> None:
        small = settings.model_copy(update={"max_upload_bytes": 10})
        client = TestClient(create_app(settings=small, store=store, engine=fake_engine))

        response = client.post(
            UPLOAD_URL,
            files={"file": ("roster.csv", b"Name,Email\n" * 10, "text/csv")},
            headers=admin_headers,
        )

        assert response.status_code == 413

    def test_requires_auth(self, client: TestClient) -> None:
        response = client.post(UPLOAD_URL, files={"file": ("r.csv", b"a,b\n", "text/csv")})

        assert response.status_code == 401
