"""Tests for API endpoints."""

from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from sandbox_agent.errors import SessionCreateError
from sandbox_agent.main import app
from sandbox_agent.models.conversation import session_payload

client = TestClient(app)


class FakeConversationService:
    """Stands in for ConversationService and acknowledges every request."""

    instances: list["FakeConversationService"] = []

    def __init__(self, send):
        self.send = send
        self.requests = []
        self.shutdown_called = False
        FakeConversationService.instances.append(self)

    async def connect(self):
        await self.send(session_payload("sbx-1"))
        return "sbx-1"

    async def handle(self, request):
        self.requests.append(request)
        await self.send({"type": "ack", "request": request.type})

    async def emit(self, event):
        await self.send(event.to_wire())

    async def shutdown(self):
        self.shutdown_called = True


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_check_returns_200(self):
        """Test that health check returns 200 status."""
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_check_response_structure(self):
        """Test that health check returns expected JSON structure."""
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert "timestamp" in data

    def test_health_check_content_type(self):
        """Test that health check returns JSON content type."""
        response = client.get("/health")
        assert response.headers["content-type"] == "application/json"


class TestSessionEndpoint:
    """Tests for sandbox provisioning over REST."""

    def test_create_session(self):
        with patch("sandbox_agent.api.endpoints.SandboxSessionManager") as manager_cls:
            manager_cls.return_value.create_session = AsyncMock(return_value="sbx-42")

            response = client.post("/session")

        assert response.status_code == 200
        assert response.json() == {"sessionId": "sbx-42"}

    def test_create_session_failure(self):
        with patch("sandbox_agent.api.endpoints.SandboxSessionManager") as manager_cls:
            manager_cls.return_value.create_session = AsyncMock(
                side_effect=SessionCreateError("Failed to create sandbox: quota exceeded")
            )

            response = client.post("/session")

        assert response.status_code == 500
        assert "quota exceeded" in response.json()["detail"]


class TestConversationSocket:
    """Tests for the WebSocket conversation channel."""

    def setup_method(self):
        FakeConversationService.instances.clear()

    def test_session_sent_on_connect(self):
        with patch("sandbox_agent.api.endpoints.ConversationService", FakeConversationService):
            with client.websocket_connect("/ws") as websocket:
                assert websocket.receive_json() == {"type": "session", "sessionId": "sbx-1"}

    def test_control_messages_dispatched(self):
        with patch("sandbox_agent.api.endpoints.ConversationService", FakeConversationService):
            with client.websocket_connect("/ws") as websocket:
                websocket.receive_json()

                websocket.send_json({"type": "chat", "message": "list files in /"})
                assert websocket.receive_json() == {"type": "ack", "request": "chat"}

                websocket.send_json({"type": "resume", "sessionId": "sbx-7"})
                assert websocket.receive_json() == {"type": "ack", "request": "resume"}

        (service,) = FakeConversationService.instances
        assert service.requests[0].message == "list files in /"
        assert service.requests[1].session_id == "sbx-7"

    def test_unrecognized_message(self):
        with patch("sandbox_agent.api.endpoints.ConversationService", FakeConversationService):
            with client.websocket_connect("/ws") as websocket:
                websocket.receive_json()

                websocket.send_text("not json at all")
                assert websocket.receive_json() == {"type": "error", "data": {"message": "Unrecognized message"}}

                websocket.send_json({"type": "teleport"})
                assert websocket.receive_json() == {"type": "error", "data": {"message": "Unrecognized message"}}

        assert FakeConversationService.instances[0].requests == []

    def test_disconnect_shuts_down_service(self):
        with patch("sandbox_agent.api.endpoints.ConversationService", FakeConversationService):
            with client.websocket_connect("/ws") as websocket:
                websocket.receive_json()

        assert FakeConversationService.instances[0].shutdown_called
