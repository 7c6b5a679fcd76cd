"""Tests for the signaling relay between a host and its guests."""
from __future__ import annotations

import pytest

from forum_api.services.events import SignalingHub
from forum_api.services.rooms import RoomRegistry, UnauthorizedError


class DummyConnection:
    def __init__(self) -> None:
        self.messages: list[tuple[str, object]] = []

    def deliver(self, event: str, data: object) -> None:
        self.messages.append((event, data))

    def received(self, event: str) -> list[object]:
        return [data for name, data in self.messages if name == event]


@pytest.fixture
def call():
    """A room hosted by A with guests B and C, plus one outsider D."""

    hub = SignalingHub(RoomRegistry(code_factory=lambda: "482913"))
    sinks = {name: DummyConnection() for name in "ABCD"}
    conns = {name: hub.connect(name, sinks[name].deliver) for name in "ABCD"}
    room = hub.membership.create(conns["A"], "Standup", None)
    hub.membership.join(conns["B"], room.code, None)
    hub.membership.join(conns["C"], room.code, None)
    for sink in sinks.values():
        sink.messages.clear()
    return hub, room, conns, sinks


def test_broadcast_offer_reaches_every_other_member(call):
    hub, _room, conns, sinks = call

    delivered = hub.relay.broadcast_offer(conns["A"], {"sdp": "v=0"})

    assert delivered == 2
    expected = [{"from": "A", "offer": {"sdp": "v=0"}}]
    assert sinks["B"].received("rtc:offer") == expected
    assert sinks["C"].received("rtc:offer") == expected
    assert sinks["A"].received("rtc:offer") == []
    assert sinks["D"].messages == []


def test_broadcast_offer_is_host_only(call):
    hub, _room, conns, sinks = call

    with pytest.raises(UnauthorizedError):
        hub.relay.broadcast_offer(conns["B"], {"sdp": "v=0"})

    assert all(sink.messages == [] for sink in sinks.values())


def test_host_ice_fans_out_to_all_guests(call):
    hub, _room, conns, sinks = call

    hub.relay.ice(conns["A"], {"candidate": "host-cand"})

    expected = [{"from": "A", "candidate": {"candidate": "host-cand"}}]
    assert sinks["B"].received("rtc:ice") == expected
    assert sinks["C"].received("rtc:ice") == expected
    assert sinks["A"].received("rtc:ice") == []


def test_guest_ice_goes_only_to_host(call):
    hub, _room, conns, sinks = call

    hub.relay.ice(conns["B"], {"candidate": "guest-cand"})

    assert sinks["A"].received("rtc:ice") == [{"from": "B", "candidate": {"candidate": "guest-cand"}}]
    assert sinks["C"].received("rtc:ice") == []
    assert sinks["B"].received("rtc:ice") == []


def test_ice_without_candidate_or_room_is_dropped(call):
    hub, _room, conns, sinks = call

    assert hub.relay.ice(conns["B"], None) == 0
    assert hub.relay.ice(conns["D"], {"candidate": "x"}) == 0
    assert all(sink.messages == [] for sink in sinks.values())


def test_answer_is_routed_to_current_host(call):
    hub, room, conns, sinks = call

    assert hub.relay.answer(conns["B"], {"sdp": "answer"}) is True
    assert sinks["A"].received("rtc:answer") == [{"from": "B", "answer": {"sdp": "answer"}}]
    assert sinks["C"].received("rtc:answer") == []


@pytest.mark.asyncio
async def test_answer_follows_host_reclaim(call):
    hub, room, conns, sinks = call
    new_sink = DummyConnection()
    new_host = hub.connect("A2", new_sink.deliver)

    hub.disconnect(conns["A"])
    hub.membership.join(new_host, room.code, None, host_key=room.host_key)
    hub.relay.answer(conns["B"], {"sdp": "answer"})

    assert new_sink.received("rtc:answer") == [{"from": "B", "answer": {"sdp": "answer"}}]
    assert sinks["A"].received("rtc:answer") == []
    await hub.shutdown()


def test_targeted_messages_reach_only_the_target(call):
    hub, _room, conns, sinks = call

    assert hub.relay.offer_to(conns["A"], "B", {"sdp": "offer"}) is True
    assert hub.relay.answer_to(conns["B"], "A", {"sdp": "answer"}) is True
    assert hub.relay.ice_to(conns["A"], "C", {"candidate": "c"}) is True

    assert sinks["B"].received("rtc:offer-to") == [{"from": "A", "payload": {"sdp": "offer"}}]
    assert sinks["C"].received("rtc:offer-to") == []
    assert sinks["A"].received("rtc:answer-to") == [{"from": "B", "payload": {"sdp": "answer"}}]
    assert sinks["C"].received("rtc:ice-to") == [{"from": "A", "payload": {"candidate": "c"}}]
    assert sinks["B"].received("rtc:ice-to") == []


def test_targeted_messages_without_valid_target_are_noops(call):
    hub, _room, conns, sinks = call

    assert hub.relay.offer_to(conns["A"], None, {"sdp": "offer"}) is False
    assert hub.relay.offer_to(conns["A"], "", {"sdp": "offer"}) is False
    assert hub.relay.offer_to(conns["A"], "D", {"sdp": "offer"}) is False
    assert hub.relay.ice_to(conns["D"], "A", {"candidate": "c"}) is False
    assert hub.relay.answer_to(conns["B"], "nobody", {}) is False

    assert all(sink.messages == [] for sink in sinks.values())


def test_ready_notifies_host_with_guest_id(call):
    hub, _room, conns, sinks = call

    assert hub.relay.ready(conns["C"]) is True
    assert hub.relay.ready(conns["A"]) is False
    assert hub.relay.ready(conns["D"]) is False

    assert sinks["A"].received("rtc:need-offer") == [{"id": "C"}]
    assert sinks["B"].messages == []
