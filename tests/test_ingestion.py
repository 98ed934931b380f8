"""IngestionConnection lifecycle driven through a scripted fake channel."""

import json

import pytest

from prothomuse.errors import StorageError
from prothomuse.ingestion import ConnectionState, IngestionConnection
from prothomuse.schemas import TelemetryRecord
from prothomuse.store import EventStore
from prothomuse.telemetry import TelemetryBuffer


def frame(route, project_id="p1", status_code=200):
    return json.dumps({
        "projectId": project_id,
        "route": route,
        "method": "GET",
        "statusCode": status_code,
        "responseTime": 12,
        "timestamp": 1700000000000,
    })


class FakeChannel:
    """Plays back inbound frames, then a disconnect, and records what is sent."""

    def __init__(self, inbound, fail_accept=False, fail_send=False):
        self.inbound = list(inbound)
        self.fail_accept = fail_accept
        self.fail_send = fail_send
        self.sent = []
        self.accepted = False
        self.closed = False
        self.client = None

    async def accept(self):
        if self.fail_accept:
            raise RuntimeError("handshake rejected")
        self.accepted = True

    async def receive(self):
        if not self.inbound:
            return {"type": "websocket.disconnect", "code": 1000}
        item = self.inbound.pop(0)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, bytes):
            return {"type": "websocket.receive", "bytes": item}
        return {"type": "websocket.receive", "text": item}

    async def send_text(self, data):
        if self.fail_send:
            raise RuntimeError("socket closed")
        self.sent.append(json.loads(data))

    async def close(self, code=1000):
        self.closed = True


class FakeEventStore:
    def __init__(self, fail=False):
        self.fail = fail
        self.saved = []

    def save(self, record):
        if self.fail:
            raise StorageError("database unavailable")
        self.saved.append(record)
        return record


async def run_connection(channel, store=None, buffer=None):
    buffer = buffer if buffer is not None else TelemetryBuffer()
    store = store if store is not None else FakeEventStore()
    connection = IngestionConnection(channel, buffer, store)
    await connection.run()
    return connection, buffer, store


async def test_events_are_buffered_persisted_and_acknowledged_in_order():
    channel = FakeChannel([frame("/e1"), frame("/e2"), frame("/e3")])
    connection, buffer, store = await run_connection(channel)

    assert [r.route for r in buffer.by_project("p1")] == ["/e1", "/e2", "/e3"]
    assert [r.route for r in store.saved] == ["/e1", "/e2", "/e3"]
    assert len(channel.sent) == 3
    assert all(ack["status"] == "received" for ack in channel.sent)
    assert connection.received == 3
    assert connection.state is ConnectionState.CLOSED


async def test_malformed_frame_is_dropped_without_closing():
    channel = FakeChannel(["{not json", frame("/ok")])
    connection, buffer, store = await run_connection(channel)

    assert len(channel.sent) == 1
    assert channel.sent[0]["status"] == "received"
    assert [r.route for r in buffer.all()] == ["/ok"]
    assert connection.dropped == 1
    assert connection.received == 1


async def test_binary_frames_are_decoded():
    channel = FakeChannel([frame("/bin").encode()])
    _, buffer, _ = await run_connection(channel)
    assert [r.route for r in buffer.all()] == ["/bin"]


async def test_storage_failure_keeps_buffer_and_still_acknowledges():
    channel = FakeChannel([frame("/e1"), frame("/e2")])
    connection, buffer, store = await run_connection(channel, store=FakeEventStore(fail=True))

    assert [r.route for r in buffer.all()] == ["/e1", "/e2"]
    assert store.saved == []
    assert len(channel.sent) == 2
    assert all(ack["status"] == "received" for ack in channel.sent)
    assert connection.persist_failures == 2


async def test_peer_disconnect_ends_loop_without_close_call():
    channel = FakeChannel([])
    connection, buffer, _ = await run_connection(channel)

    assert channel.accepted
    assert not channel.closed
    assert len(buffer) == 0
    assert connection.state is ConnectionState.CLOSED


async def test_read_failure_closes_connection():
    channel = FakeChannel([frame("/e1"), OSError("connection reset"), frame("/never")])
    connection, buffer, _ = await run_connection(channel)

    assert [r.route for r in buffer.all()] == ["/e1"]
    assert channel.closed
    assert connection.state is ConnectionState.CLOSED


async def test_send_failure_closes_connection_after_commit():
    channel = FakeChannel([frame("/e1"), frame("/e2")], fail_send=True)
    connection, buffer, store = await run_connection(channel)

    # The first event was committed before the acknowledgement failed
    assert [r.route for r in buffer.all()] == ["/e1"]
    assert [r.route for r in store.saved] == ["/e1"]
    assert channel.closed
    assert connection.state is ConnectionState.CLOSED


async def test_upgrade_failure_never_opens():
    channel = FakeChannel([frame("/e1")], fail_accept=True)
    connection, buffer, store = await run_connection(channel)

    assert connection.state is ConnectionState.CLOSED
    assert len(buffer) == 0
    assert store.saved == []
    assert channel.sent == []


async def test_connections_share_one_buffer():
    buffer = TelemetryBuffer()
    await run_connection(FakeChannel([frame("/a1", "a")]), buffer=buffer)
    await run_connection(FakeChannel([frame("/b1", "b"), frame("/a2", "a")]), buffer=buffer)

    assert [r.route for r in buffer.by_project("a")] == ["/a1", "/a2"]
    assert len(buffer) == 3


@pytest.mark.parametrize("bad_frame", ["", "[]", '{"projectId": "p1"}'])
async def test_decode_failures_send_nothing(bad_frame):
    channel = FakeChannel([bad_frame])
    connection, _, _ = await run_connection(channel)
    assert channel.sent == []
    assert connection.dropped == 1


async def test_out_of_range_timestamp_is_dropped_with_real_store(session_factory):
    huge = json.dumps({
        "projectId": "p1",
        "route": "/huge",
        "method": "GET",
        "statusCode": 200,
        "responseTime": 12,
        "timestamp": 2**70,
    })
    store = EventStore(session_factory)
    channel = FakeChannel([huge, frame("/after")])
    connection, buffer, _ = await run_connection(channel, store=store)

    assert [r.route for r in buffer.all()] == ["/after"]
    assert [e.route for e in store.list_all()] == ["/after"]
    assert channel.sent == [{"status": "received", "message": "Metric saved successfully"}]
    assert connection.dropped == 1
    assert connection.persist_failures == 0


def test_event_store_maps_driver_overflow_to_storage_error(session_factory):
    store = EventStore(session_factory)
    record = TelemetryRecord.model_construct(
        project_id="p1",
        route="/huge",
        method="GET",
        status_code=200,
        response_time=12,
        timestamp=2**70,
    )
    with pytest.raises(StorageError):
        store.save(record)

    # The store is still usable afterwards
    saved = store.save(TelemetryRecord(
        projectId="p1", route="/ok", method="GET", statusCode=200, responseTime=1, timestamp=1,
    ))
    assert saved.id is not None
