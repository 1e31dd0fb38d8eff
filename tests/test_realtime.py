import asyncio

from flashdeck.realtime import events
from flashdeck.realtime.manager import ConnectionManager
from flashdeck.schemas.flashcard import Flashcard


class FakeWebSocket:
    def __init__(self, fail=False):
        self.fail = fail
        self.accepted = False
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_json(self, data):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)


def run(coro):
    return asyncio.run(coro)


class TestConnectionManager:
    def test_connect_accepts(self):
        manager = ConnectionManager()
        ws = FakeWebSocket()
        run(manager.connect(ws))
        assert ws.accepted
        assert ws in manager.active_connections

    def test_broadcast_reaches_every_connection(self):
        manager = ConnectionManager()
        sockets = [FakeWebSocket() for _ in range(3)]
        for ws in sockets:
            run(manager.connect(ws))

        delivered = run(manager.broadcast(events.PACK_DELETED, {"id": "p1"}))

        assert delivered == 3
        for ws in sockets:
            assert ws.sent == [{"type": "pack-deleted", "data": {"id": "p1"}}]

    def test_models_are_serialized(self):
        manager = ConnectionManager()
        ws = FakeWebSocket()
        run(manager.connect(ws))
        card = Flashcard(id="c1", pack_id="p1", question="2+2?", answer="4", order=0)

        run(manager.broadcast(events.FLASHCARD_CREATED, card))

        assert ws.sent[0]["data"]["pack_id"] == "p1"

    def test_failed_send_drops_connection_and_does_not_raise(self):
        manager = ConnectionManager()
        good, dead = FakeWebSocket(), FakeWebSocket(fail=True)
        run(manager.connect(good))
        run(manager.connect(dead))

        delivered = run(manager.broadcast(events.USER_UPDATED, {}))

        assert delivered == 1
        assert dead not in manager.active_connections
        assert good in manager.active_connections

    def test_disconnected_client_misses_event(self):
        manager = ConnectionManager()
        ws = FakeWebSocket()
        run(manager.connect(ws))
        manager.disconnect(ws)
        manager.disconnect(ws)

        assert run(manager.broadcast(events.PACK_CREATED, {})) == 0
        assert ws.sent == []

    def test_missing_payload_sent_as_empty_object(self):
        manager = ConnectionManager()
        ws = FakeWebSocket()
        run(manager.connect(ws))
        run(manager.broadcast(events.NOTIFICATIONS_UPDATED))
        assert ws.sent == [{"type": "notifications-updated", "data": {}}]


class TestWebSocketEndpoint:
    def test_ping_pong(self, client):
        with client.websocket_connect("/ws") as ws:
            ws.send_text("ping")
            assert ws.receive_json() == {"type": "pong", "data": {}}

    def test_mutation_is_broadcast(self, client, admin, auth_headers):
        with client.websocket_connect("/ws") as ws:
            resp = client.post(
                "/api/v1/packs/",
                json={"title": "Fractions", "subject": "Maths"},
                headers=auth_headers(admin),
            )
            assert resp.status_code == 201
            event = ws.receive_json()

        assert event["type"] == "pack-created"
        assert event["data"]["id"] == resp.json()["id"]

    def test_closed_socket_unregistered(self, client, app):
        with client.websocket_connect("/ws"):
            assert len(app.state.broadcaster.active_connections) == 1
        # the server side notices the close on its next receive
        for _ in range(50):
            if not app.state.broadcaster.active_connections:
                break
            client.get("/ping")
        assert not app.state.broadcaster.active_connections
