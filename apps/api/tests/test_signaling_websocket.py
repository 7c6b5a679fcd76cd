"""End-to-end tests for the signaling websocket."""
from __future__ import annotations

from fastapi.testclient import TestClient

from forum_api.main import create_app
from forum_api.services.events import SignalingHub
from forum_api.services.rooms import RoomRegistry


def _until(ws, event: str, ack: int | None = None) -> tuple[list[dict], dict]:
    """Read frames until ``event`` (and matching ack id) arrives; return the skipped frames too."""

    skipped: list[dict] = []
    while True:
        frame = ws.receive_json()
        if frame["event"] == event and (ack is None or frame.get("ack") == ack):
            return skipped, frame
        skipped.append(frame)


def _request(ws, event: str, data, ack: int) -> tuple[list[dict], dict]:
    ws.send_json({"event": event, "data": data, "ack": ack})
    skipped, frame = _until(ws, "ack", ack)
    return skipped, frame["data"]


def _app():
    return create_app(SignalingHub(RoomRegistry(code_factory=lambda: "482913")))


def test_signaling_websocket_room_flow():
    with TestClient(_app()) as client:
        with client.websocket_connect("/ws") as ws_a:
            welcome_a = ws_a.receive_json()
            assert welcome_a["event"] == "welcome"
            host_id = welcome_a["data"]["id"]

            _, hello = _request(ws_a, "hello", "Alice", 1)
            assert hello == {"ok": True, "name": "Alice"}

            skipped, created = _request(ws_a, "create-room", {"name": "Standup", "pin": "1234"}, 2)
            assert created["ok"] is True
            assert created["room"]["code"] == "482913"
            assert created["room"]["hostId"] == host_id
            assert skipped[0]["event"] == "chat"
            assert skipped[0]["data"]["sys"] is True
            assert skipped[0]["data"]["text"] == "Created room: Standup (482913)"

            with client.websocket_connect("/ws") as ws_b:
                guest_id = ws_b.receive_json()["data"]["id"]
                _request(ws_b, "hello", "Bob", 1)

                _, denied = _request(ws_b, "join-room", {"code": "482913", "pin": "0000"}, 2)
                assert denied == {"ok": False, "error": "wrong pin"}

                _, joined = _request(ws_b, "join-room", {"code": "482913", "pin": "1234"}, 3)
                assert joined["ok"] is True

                _, notice = _until(ws_a, "chat")
                assert notice["data"]["text"] == "Bob joined"
                _, peers = _until(ws_a, "rtc:peers")
                assert sorted(peers["data"]["peers"]) == sorted([host_id, guest_id])

                _, live = _request(ws_a, "room:live", True, 3)
                assert live == {"ok": True, "live": True}
                _, live_b = _until(ws_b, "room:live")
                assert live_b["data"] is True

                ws_b.send_json({"event": "rtc:ready", "data": {}})
                _, need = _until(ws_a, "rtc:need-offer")
                assert need["data"] == {"id": guest_id}

                ws_a.send_json({"event": "rtc:offer-to", "data": {"targetId": guest_id, "payload": {"sdp": "o"}}})
                _, offer = _until(ws_b, "rtc:offer-to")
                assert offer["data"] == {"from": host_id, "payload": {"sdp": "o"}}

                ws_b.send_json({"event": "chat", "data": "hello"})
                _, chat_a = _until(ws_a, "chat")
                assert chat_a["data"]["name"] == "Bob"
                assert chat_a["data"]["text"] == "hello"

            _, left = _until(ws_a, "rtc:peer-left")
            assert left["data"] == {"peerId": guest_id}


def test_host_disconnect_ends_call_for_guest():
    with TestClient(_app()) as client:
        with client.websocket_connect("/ws") as ws_b:
            ws_b.receive_json()
            with client.websocket_connect("/ws") as ws_a:
                ws_a.receive_json()
                _request(ws_a, "create-room", {"name": "Standup"}, 1)
                _, joined = _request(ws_b, "join-room", {"code": "482913"}, 1)
                assert joined["ok"] is True

            _, end = _until(ws_b, "end-call")
            assert end["data"] == {"reason": "host-left"}
            _, notice = _until(ws_b, "chat")
            assert notice["data"]["text"] == "Host ended the call"


def test_malformed_and_unknown_frames():
    with TestClient(_app()) as client:
        with client.websocket_connect("/ws") as ws:
            ws.receive_json()

            ws.send_text("not json")
            assert ws.receive_json() == {"event": "error", "data": {"error": "Malformed frame"}}

            ws.send_json({"data": {}})
            assert ws.receive_json() == {"event": "error", "data": {"error": "Malformed frame"}}

            ws.send_json([1, 2])
            ws.send_json(5)
            ws.send_text("null")
            ws.send_json({"event": "hello", "data": "Ann", "ack": 6})
            assert ws.receive_json() == {"event": "ack", "ack": 6, "data": {"ok": True, "name": "Ann"}}

            _, unknown = _request(ws, "teleport", {}, 7)
            assert unknown == {"ok": False, "error": "Unknown event: teleport"}

            _, left = _request(ws, "leave-room", None, 8)
            assert left == {"ok": True}
