"""HTTP tests for the conversations, messages, users and presence endpoints."""

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from messenger.repositories.conversation_repository import ConversationRepository
from messenger.schemas.events import MESSAGE_READ, NEW_MESSAGE


async def send(client, auth, sender_id, recipient_id, text, conversation_id=None):
    return await client.post(
        "/messages",
        json={"recipientId": recipient_id, "text": text, "conversationId": conversation_id},
        headers=auth(sender_id),
    )


class TestAuthentication:

    @pytest.mark.asyncio
    async def test_requests_without_identity_are_rejected(self, client, users, push):
        assert (await client.get("/conversations")).status_code == 401
        assert (await client.post("/messages", json={"recipientId": users["bob"], "text": "hi"})).status_code == 401
        assert (await client.put("/messages/read", json={"id": "x"})).status_code == 401
        assert push.sent == []

    @pytest.mark.asyncio
    async def test_bad_token_is_rejected(self, client, users):
        response = await client.get("/conversations", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_token_for_unknown_user_is_rejected(self, client, auth):
        response = await client.get("/conversations", headers=auth("5f0000000000000000000000"))
        assert response.status_code == 401


class TestFirstMessage:

    @pytest.mark.asyncio
    async def test_first_message_creates_conversation(self, client, auth, users, push):
        alice, bob = users["alice"], users["bob"]

        response = await send(client, auth, alice, bob, "  hello bob  ")

        assert response.status_code == 200
        data = response.json()
        conversation_id = data["message"]["conversationId"]
        assert conversation_id
        assert data["message"]["text"] == "hello bob"
        assert data["message"]["senderId"] == alice
        assert data["sender"]["id"] == alice

        listing = (await client.get("/conversations", headers=auth(bob))).json()
        assert len(listing) == 1
        [convo] = listing
        assert convo["id"] == conversation_id
        assert convo["otherUser"]["id"] == alice
        assert convo["otherUser"]["username"] == "alice"
        assert convo["otherUser"]["online"] is False
        assert convo["notificationCount"] == 1
        assert convo["latestMessageText"] == "hello bob"
        assert convo["lastReadByMe"] is None
        assert convo["lastReadByOther"] is None

    @pytest.mark.asyncio
    async def test_new_message_is_pushed_to_recipient_only(self, client, auth, users, push):
        alice, bob = users["alice"], users["bob"]

        first = (await send(client, auth, alice, bob, "one")).json()
        second = (await send(client, auth, alice, bob, "two", first["message"]["conversationId"])).json()

        assert second["sender"] is None
        events = push.sent_to(bob, NEW_MESSAGE)
        assert [e["kind"] for e in events] == ["new_conversation", "append"]
        assert events[0]["sender"]["id"] == alice
        assert events[0]["recipientId"] == bob
        assert "sender" not in events[1]
        assert push.sent_to(alice, NEW_MESSAGE) == []

    @pytest.mark.asyncio
    async def test_reply_without_conversation_id_reuses_conversation(self, client, auth, users, push):
        alice, bob = users["alice"], users["bob"]

        first = (await send(client, auth, alice, bob, "hi")).json()
        reply = (await send(client, auth, bob, alice, "hey")).json()

        assert reply["message"]["conversationId"] == first["message"]["conversationId"]
        assert reply["sender"] is None
        assert push.sent_to(alice, NEW_MESSAGE)[0]["kind"] == "append"

    @pytest.mark.asyncio
    async def test_messages_are_newest_first_in_snapshot(self, client, auth, users):
        alice, bob = users["alice"], users["bob"]
        first = (await send(client, auth, alice, bob, "one")).json()
        cid = first["message"]["conversationId"]
        await send(client, auth, bob, alice, "two", cid)
        await send(client, auth, alice, bob, "three", cid)

        [convo] = (await client.get("/conversations", headers=auth(alice))).json()

        assert [m["text"] for m in convo["messages"]] == ["three", "two", "one"]
        assert convo["latestMessageText"] == "three"
        assert convo["notificationCount"] == 1


class TestMarkRead:

    @pytest.mark.asyncio
    async def test_mark_read_updates_watermarks_once(self, client, auth, users, push):
        alice, bob = users["alice"], users["bob"]
        sent = (await send(client, auth, alice, bob, "hi")).json()["message"]
        body = {"id": sent["id"], "senderId": alice, "conversationId": sent["conversationId"]}

        assert (await client.put("/messages/read", json=body, headers=auth(bob))).status_code == 204
        assert (await client.put("/messages/read", json=body, headers=auth(bob))).status_code == 204

        assert len(push.sent_to(alice, MESSAGE_READ)) == 1
        [alice_view] = (await client.get("/conversations", headers=auth(alice))).json()
        [bob_view] = (await client.get("/conversations", headers=auth(bob))).json()
        assert alice_view["lastReadByOther"] == sent["id"]
        assert alice_view["messages"][0]["readerIds"] == [bob]
        assert bob_view["lastReadByMe"] == sent["id"]
        assert bob_view["notificationCount"] == 0

    @pytest.mark.asyncio
    async def test_missing_message_is_404(self, client, auth, users):
        response = await client.put("/messages/read", json={"id": "5f0000000000000000000000"}, headers=auth(users["bob"]))
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_outsider_is_403(self, client, auth, users):
        sent = (await send(client, auth, users["alice"], users["bob"], "hi")).json()["message"]
        response = await client.put("/messages/read", json={"id": sent["id"]}, headers=auth(users["carol"]))
        assert response.status_code == 403


class TestSendValidation:

    @pytest.mark.asyncio
    async def test_unknown_conversation_is_404(self, client, auth, users):
        response = await send(client, auth, users["alice"], users["bob"], "hi", "5f0000000000000000000000")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_foreign_conversation_is_403(self, client, auth, users):
        sent = (await send(client, auth, users["alice"], users["bob"], "hi")).json()["message"]
        response = await send(client, auth, users["carol"], users["bob"], "hi", sent["conversationId"])
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_blank_text_is_400(self, client, auth, users, push):
        response = await send(client, auth, users["alice"], users["bob"], "   ")
        assert response.status_code == 400
        assert push.sent == []

    @pytest.mark.asyncio
    async def test_message_to_self_is_400(self, client, auth, users):
        response = await send(client, auth, users["alice"], users["alice"], "hi")
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_recipient_is_400(self, client, auth, users, db):
        response = await send(client, auth, users["alice"], "5f0000000000000000000000", "hi")
        assert response.status_code == 400
        assert await ConversationRepository(db).collection.count_documents({}) == 0


class TestUsersAndPresence:

    @pytest.mark.asyncio
    async def test_search_excludes_caller_and_reports_presence(self, client, auth, users, app):
        app.state.presence.connect(users["bob"])

        response = await client.get("/users/B", headers=auth(users["alice"]))

        assert response.status_code == 200
        assert response.json() == [{
            "id": users["bob"],
            "username": "bob",
            "photoUrl": "https://img.example/bob.png",
            "online": True,
        }]
        assert (await client.get("/users/alice", headers=auth(users["alice"]))).json() == []

    @pytest.mark.asyncio
    async def test_presence_is_reflected_in_snapshots(self, client, auth, users, app):
        alice, bob = users["alice"], users["bob"]
        await send(client, auth, alice, bob, "hi")

        app.state.presence.connect(alice)
        [convo] = (await client.get("/conversations", headers=auth(bob))).json()
        assert convo["otherUser"]["online"] is True
        assert (await client.get(f"/presence/{alice}")).json() == {"user_id": alice, "online": True}

        app.state.presence.disconnect(alice)
        [convo] = (await client.get("/conversations", headers=auth(bob))).json()
        assert convo["otherUser"]["online"] is False


class BrokenCollection:

    def find(self, *args, **kwargs):
        raise ServerSelectionTimeoutError("no servers available")


class TestStorageUnavailable:

    @pytest.mark.asyncio
    async def test_storage_failure_is_503(self, client, auth, users, monkeypatch):
        monkeypatch.setattr(ConversationRepository, "collection", property(lambda self: BrokenCollection()))

        response = await client.get("/conversations", headers=auth(users["alice"]))

        assert response.status_code == 503
