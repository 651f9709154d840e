"""WebSocket channel: authentication, presence fan-out and message push."""

import asyncio

import pytest
import redis.exceptions
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from messenger.main import create_app
from messenger.routers.realtime import send_to_socket
from messenger.utils.security import create_access_token


@pytest.fixture
def socket_app(settings, db):
    # real EventPublisher and ConnectionManager, no Redis
    return create_app(settings, database=db)


def ws_url(user_id, settings):
    return f"/ws?token={create_access_token(user_id, settings)}"


class TestRealtimeSocket:

    @pytest.mark.asyncio
    async def test_socket_without_valid_token_is_refused(self, socket_app, users):
        with TestClient(socket_app) as client:
            with pytest.raises(WebSocketDisconnect):
                with client.websocket_connect("/ws?token=garbage"):
                    pass
            assert socket_app.state.presence.online_ids() == set()

    @pytest.mark.asyncio
    async def test_presence_is_broadcast_to_other_users(self, socket_app, users, settings):
        alice, bob = users["alice"], users["bob"]
        with TestClient(socket_app) as client:
            with client.websocket_connect(ws_url(alice, settings)) as alice_ws:
                with client.websocket_connect(ws_url(bob, settings)):
                    assert alice_ws.receive_json() == {"event": "add-online-user", "data": {"id": bob}}
                    assert socket_app.state.presence.online_ids() == {alice, bob}

                assert alice_ws.receive_json() == {"event": "remove-offline-user", "data": {"id": bob}}
                assert not socket_app.state.presence.is_online(bob)

    @pytest.mark.asyncio
    async def test_new_message_reaches_recipient_socket(self, socket_app, users, settings):
        alice, bob = users["alice"], users["bob"]
        with TestClient(socket_app) as client:
            with client.websocket_connect(ws_url(bob, settings)) as bob_ws, \
                    client.websocket_connect(ws_url(alice, settings)):
                # bob seeing alice come online means both sockets are registered
                assert bob_ws.receive_json()["event"] == "add-online-user"
                response = client.post(
                    "/messages",
                    json={"recipientId": bob, "text": "hi bob", "conversationId": None},
                    headers={"Authorization": f"Bearer {create_access_token(alice, settings)}"},
                )
                assert response.status_code == 200

                pushed = bob_ws.receive_json()
                assert pushed["event"] == "new-message"
                assert pushed["data"]["kind"] == "new_conversation"
                assert pushed["data"]["message"]["id"] == response.json()["message"]["id"]
                assert pushed["data"]["sender"]["id"] == alice

    @pytest.mark.asyncio
    async def test_failed_subscription_leaves_no_stale_socket(self, socket_app, users, settings):
        bus = HalfBrokenBus()
        alice = users["alice"]
        with TestClient(socket_app) as client:
            socket_app.state.bus = bus
            with pytest.raises(redis.exceptions.ConnectionError):
                with client.websocket_connect(ws_url(alice, settings)) as ws:
                    ws.receive_text()

            assert socket_app.state.manager.active_connections == {}
            assert socket_app.state.presence.online_ids() == set()
            assert [sub.cancelled for sub in bus.subscriptions] == [True]

    @pytest.mark.asyncio
    async def test_forward_to_closed_socket_is_logged_not_raised(self, caplog):
        class ClosedSocket:
            async def send_text(self, message):
                raise RuntimeError('Cannot call "send" once a close message has been sent.')

        await send_to_socket(ClosedSocket(), "u1", "{}")

        assert "closed socket of user u1" in caplog.text


class HalfBrokenBus:
    """Subscribes to the first channel, then loses its Redis connection."""

    enabled = True

    def __init__(self):
        self.subscriptions = []

    async def publish(self, channel, message):
        return

    async def subscribe(self, channel, on_message):
        if self.subscriptions:
            raise redis.exceptions.ConnectionError("Connection reset by peer")
        sub = IdleSubscription()
        self.subscriptions.append(sub)
        return sub

    async def close(self):
        return


class IdleSubscription:

    def __init__(self):
        self.cancelled = False

    async def run(self):
        await asyncio.Event().wait()

    async def cancel(self):
        self.cancelled = True
