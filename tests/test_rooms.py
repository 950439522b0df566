"""
Tests for room membership and fan-out.
"""
import asyncio

from starlette.websockets import WebSocketDisconnect, WebSocketState

from rooms import ClientConnection, RoomRegistry, SlideEventRelay


class FakeConnection:
    def __init__(self, connection_id, accept=True):
        self.connection_id = connection_id
        self.accept = accept
        self.received = []

    def deliver(self, message):
        if not self.accept:
            return False
        self.received.append(message)
        return True


def run(coro):
    return asyncio.run(coro)


class FakeWebSocket:
    def __init__(self, slow_types=(), fail=False):
        self.client_state = WebSocketState.CONNECTED
        self.slow_types = set(slow_types)
        self.fail = fail
        self.sent = []

    async def send_json(self, message):
        if self.fail:
            raise WebSocketDisconnect(code=1006)
        if message["type"] in self.slow_types:
            await asyncio.sleep(10)
        self.sent.append(message)


async def wait_until(condition, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            return False
        await asyncio.sleep(0.01)
    return True


class TestRoomRegistry:

    def test_join_and_members(self):
        async def scenario():
            registry = RoomRegistry()
            a, b, c = FakeConnection("a"), FakeConnection("b"), FakeConnection("c")
            await registry.join(a, "room-1")
            await registry.join(b, "room-1")
            await registry.join(c, "room-2")
            return await registry.members_of("room-1"), await registry.members_of("room-2"), (a, b, c)

        room_1, room_2, (a, b, c) = run(scenario())
        assert room_1 == frozenset({a, b})
        assert room_2 == frozenset({c})

    def test_join_replaces_previous_room(self):
        async def scenario():
            registry = RoomRegistry()
            a = FakeConnection("a")
            await registry.join(a, "room-1")
            previous = await registry.join(a, "room-2")
            return previous, await registry.members_of("room-1"), await registry.room_of("a"), await registry.counts()

        previous, old_members, room, counts = run(scenario())
        assert previous == "room-1"
        assert old_members == frozenset()
        assert room == "room-2"
        assert counts == {"room-2": 1}

    def test_leave(self):
        async def scenario():
            registry = RoomRegistry()
            a = FakeConnection("a")
            await registry.join(a, "room-1")
            left = await registry.leave("a")
            again = await registry.leave("a")
            return left, again, await registry.members_of("room-1")

        left, again, members = run(scenario())
        assert left == "room-1"
        assert again is None
        assert members == frozenset()

    def test_snapshot_is_not_affected_by_later_changes(self):
        async def scenario():
            registry = RoomRegistry()
            a, b = FakeConnection("a"), FakeConnection("b")
            await registry.join(a, "room-1")
            snapshot = await registry.members_of("room-1")
            await registry.join(b, "room-1")
            await registry.leave("a")
            return snapshot, a

        snapshot, a = run(scenario())
        assert snapshot == frozenset({a})

    def test_concurrent_joins(self):
        async def scenario():
            registry = RoomRegistry()
            connections = [FakeConnection(str(i)) for i in range(50)]
            await asyncio.gather(*(registry.join(conn, f"room-{i % 2}") for i, conn in enumerate(connections)))
            return await registry.counts()

        assert run(scenario()) == {"room-0": 25, "room-1": 25}


class TestSlideEventRelay:

    def test_publish_reaches_current_members_only(self):
        async def scenario():
            registry = RoomRegistry()
            relay = SlideEventRelay(registry)
            a, b, outsider = FakeConnection("a"), FakeConnection("b"), FakeConnection("x")
            await registry.join(a, "room-1")
            await registry.join(outsider, "room-2")
            delivered = await relay.publish("room-1", {"type": "slide-update", "n": 1})
            await registry.join(b, "room-1")
            return delivered, a, b, outsider

        delivered, a, b, outsider = run(scenario())
        assert delivered == 1
        assert a.received == [{"type": "slide-update", "n": 1}]
        assert b.received == []
        assert outsider.received == []

    def test_empty_room_is_a_no_op(self):
        relay = SlideEventRelay(RoomRegistry())
        assert run(relay.publish("nobody-here", {"type": "slide-update"})) == 0

    def test_order_is_preserved(self):
        async def scenario():
            registry = RoomRegistry()
            relay = SlideEventRelay(registry)
            a = FakeConnection("a")
            await registry.join(a, "room-1")
            for n in range(5):
                await relay.publish("room-1", {"type": "slide-update", "n": n})
            return a

        a = run(scenario())
        assert [m["n"] for m in a.received] == [0, 1, 2, 3, 4]

    def test_refused_delivery_is_not_counted(self):
        async def scenario():
            registry = RoomRegistry()
            relay = SlideEventRelay(registry)
            await registry.join(FakeConnection("a"), "room-1")
            await registry.join(FakeConnection("b", accept=False), "room-1")
            return await relay.publish("room-1", {"type": "agent-message"})

        assert run(scenario()) == 1


class TestClientConnection:

    def test_messages_go_out_in_order(self):
        async def scenario():
            websocket = FakeWebSocket()
            connection = ClientConnection("a", websocket)
            connection.start()
            for n in range(5):
                connection.deliver({"type": "slide-update", "n": n})
            await wait_until(lambda: len(websocket.sent) == 5)
            await connection.close()
            return websocket.sent

        assert [m["n"] for m in run(scenario())] == [0, 1, 2, 3, 4]

    def test_slow_send_is_dropped_and_next_message_still_sent(self):
        async def scenario():
            websocket = FakeWebSocket(slow_types={"stuck"})
            connection = ClientConnection("a", websocket, send_timeout=0.05)
            connection.start()
            connection.deliver({"type": "stuck"})
            connection.deliver({"type": "slide-update", "n": 1})
            connection.deliver({"type": "slide-update", "n": 2})
            sent_all = await wait_until(lambda: len(websocket.sent) == 2)
            await connection.close()
            return sent_all, websocket.sent

        sent_all, sent = run(scenario())
        assert sent_all
        assert sent == [{"type": "slide-update", "n": 1}, {"type": "slide-update", "n": 2}]

    def test_full_outbox_refuses_delivery(self):
        async def scenario():
            connection = ClientConnection("a", FakeWebSocket(), outbox_size=2)
            return [connection.deliver({"type": "agent-message", "n": n}) for n in range(3)]

        assert run(scenario()) == [True, True, False]

    def test_disconnect_stops_sender(self):
        async def scenario():
            websocket = FakeWebSocket(fail=True)
            connection = ClientConnection("a", websocket)
            connection.start()
            sender = connection._sender
            connection.deliver({"type": "slide-update"})
            stopped = await wait_until(sender.done)
            await connection.close()
            return stopped, sender

        stopped, sender = run(scenario())
        assert stopped
        assert sender.exception() is None

    def test_disconnected_client_gets_nothing(self):
        async def scenario():
            websocket = FakeWebSocket()
            websocket.client_state = WebSocketState.DISCONNECTED
            connection = ClientConnection("a", websocket)
            connection.start()
            connection.deliver({"type": "slide-update"})
            await wait_until(lambda: connection.outbox.empty())
            await asyncio.sleep(0.02)
            await connection.close()
            return websocket.sent

        assert run(scenario()) == []
