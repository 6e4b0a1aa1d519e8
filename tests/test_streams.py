"""
Tests for the log stream manager.

Covers ordering and exactly-once termination, stop semantics (including stop
racing with open), independence of concurrent streams, and refusal handling.
"""

import threading

import pytest

from kubelog.exceptions import (
    StreamAlreadyOpenError, StreamOpenRefusedError, RemoteUnavailableError, NotInitializedError
)
from kubelog.models import LogStreamOptions, StreamState
from kubelog.sinks import CallbackSink
from kubelog.streams import LogStreamManager, stream_id_for, stream_key

from .conftest import FakeTransport, RecordingSink, WAIT


@pytest.fixture
def manager(fake_cluster, fake_opener):
    return LogStreamManager(fake_cluster, opener=fake_opener, options=LogStreamOptions(tail_lines=10))


def _wait_finished(manager, stream_id):
    session = manager.get(stream_id)
    if session is not None:
        session.join(WAIT)


def test_stream_identity():
    assert stream_key('default', 'web-0', None) == ('default', 'web-0', 'default')
    assert stream_id_for('default', 'web-0', 'app') == 'default/web-0/app'
    assert stream_id_for('default', 'web-0', '') == 'default/web-0/default'


def test_chunks_in_order_then_end(manager, fake_opener, sink):
    fake_opener.transports[('default', 'web-0', 'app')] = FakeTransport([b'one\n', b'two\n', b'three\n'])
    stream_id = manager.open('default', 'web-0', 'app', sink)
    assert stream_id == 'default/web-0/app'
    assert sink.done.wait(WAIT)
    assert sink.kinds() == ['data', 'data', 'data', 'end']
    assert sink.data() == [b'one\n', b'two\n', b'three\n']
    assert all(e[1] == stream_id for e in sink.events)
    assert manager.get(stream_id) is None


def test_request_uses_manager_options(manager, fake_opener, fake_cluster, sink):
    manager.open('default', 'web-0', None, sink)
    handle, namespace, pod, container, options = fake_opener.calls[0]
    assert handle is fake_cluster.handle()
    assert (namespace, pod, container) == ('default', 'web-0', None)
    assert options.follow and options.timestamps and options.tail_lines == 10
    manager.stop_all()


def test_transport_error_fails_once(manager, fake_opener, sink):
    transport = FakeTransport([b'partial\n'], error=ConnectionResetError("peer reset"))
    fake_opener.transports[('default', 'web-0', 'app')] = transport
    manager.open('default', 'web-0', 'app', sink)
    assert sink.done.wait(WAIT)
    assert sink.kinds() == ['data', 'error']
    assert isinstance(sink.events[-1][2], ConnectionResetError)
    assert transport.close_calls == 1
    assert len(manager) == 0


def test_stop_before_data_reports_nothing(manager, fake_opener, sink):
    transport = FakeTransport([b'late\n'], hold_before=True)
    fake_opener.transports[('default', 'web-0', 'app')] = transport
    stream_id = manager.open('default', 'web-0', 'app', sink)
    session = manager.get(stream_id)
    manager.stop(stream_id)
    session.join(WAIT)
    assert sink.events == []
    assert session.state is StreamState.STOPPED
    assert transport.closed
    assert manager.get(stream_id) is None


def test_no_data_after_stop_returns(manager, fake_opener):
    stopped = threading.Event()
    after_stop = []
    received = threading.Event()

    def on_data(chunk):
        if stopped.is_set():
            after_stop.append(chunk)
        received.set()

    chunks = [b'x\n'] * 200
    transport = FakeTransport(chunks, hold_after=True)
    fake_opener.transports[('default', 'web-0', 'app')] = transport
    stream_id = manager.open('default', 'web-0', 'app', CallbackSink(on_data, lambda e: None, lambda: None))
    assert received.wait(WAIT)
    session = manager.get(stream_id)
    manager.stop(stream_id)
    stopped.set()
    session.join(WAIT)
    assert after_stop == []


def test_stop_is_idempotent(manager, fake_opener, sink):
    transport = FakeTransport(hold_before=True)
    fake_opener.transports[('default', 'web-0', 'app')] = transport
    stream_id = manager.open('default', 'web-0', 'app', sink)
    manager.stop(stream_id)
    manager.stop(stream_id)
    manager.stop('default/unknown/default')
    assert transport.close_calls == 1
    assert sink.events == []


def test_stop_after_end_is_noop(manager, fake_opener, sink):
    fake_opener.transports[('default', 'web-0', 'app')] = FakeTransport([b'a\n'])
    stream_id = manager.open('default', 'web-0', 'app', sink)
    assert sink.done.wait(WAIT)
    manager.stop(stream_id)
    assert sink.kinds() == ['data', 'end']


def test_streams_are_independent(manager, fake_opener):
    first, second = RecordingSink(), RecordingSink()
    t1 = FakeTransport([b'1a\n'], hold_after=True)
    t2 = FakeTransport([b'2a\n', b'2b\n'])
    fake_opener.transports[('default', 'web-0', 'app')] = t1
    fake_opener.transports[('default', 'web-1', 'app')] = t2
    id1 = manager.open('default', 'web-0', 'app', first)
    id2 = manager.open('default', 'web-1', 'app', second)

    assert second.done.wait(WAIT)
    assert second.kinds() == ['data', 'data', 'end']
    assert manager.get(id1).state is StreamState.STREAMING
    assert not t1.closed

    session = manager.get(id1)
    manager.stop(id1)
    session.join(WAIT)
    assert first.kinds() == ['data']
    assert manager.get(id2) is None


def test_stop_all(manager, fake_opener):
    sinks = [RecordingSink() for _ in range(3)]
    ids = [manager.open('default', f'web-{i}', None, s) for i, s in enumerate(sinks)]
    sessions = [manager.get(i) for i in ids]
    assert manager.stop_all() == 3
    assert len(manager) == 0
    for session in sessions:
        session.join(WAIT)
        assert session.state is StreamState.STOPPED
    assert all(s.events == [] for s in sinks)
    assert all(t.closed for t in fake_opener.transports.values())
    assert manager.stop_all() == 0


def test_duplicate_key_is_rejected(manager, fake_opener, sink):
    stream_id = manager.open('default', 'web-0', None, sink)
    with pytest.raises(StreamAlreadyOpenError):
        manager.open('default', 'web-0', 'default', RecordingSink())
    assert len(fake_opener.calls) == 1
    manager.stop(stream_id)


def test_reopen_after_stop(manager, fake_opener, sink):
    stream_id = manager.open('default', 'web-0', 'app', sink)
    manager.stop(stream_id)
    del fake_opener.transports[('default', 'web-0', 'app')]
    again = RecordingSink()
    assert manager.open('default', 'web-0', 'app', again) == stream_id
    assert manager.get(stream_id).sink is again
    manager.stop_all()


def test_refusal_raises_and_untracks(manager, fake_opener, sink):
    fake_opener.error = StreamOpenRefusedError('container "app" is waiting to start')
    with pytest.raises(StreamOpenRefusedError):
        manager.open('default', 'web-0', 'app', sink)
    assert len(manager) == 0
    assert sink.events == []


def test_unclassified_open_failure(manager, fake_opener, sink):
    fake_opener.error = ConnectionRefusedError("connection refused")
    with pytest.raises(RemoteUnavailableError) as exc_info:
        manager.open('default', 'web-0', 'app', sink)
    assert isinstance(exc_info.value.__cause__, ConnectionRefusedError)
    assert len(manager) == 0


def test_open_without_session(manager, fake_cluster, sink):
    fake_cluster.current = None
    with pytest.raises(NotInitializedError):
        manager.open('default', 'web-0', 'app', sink)


def test_stop_while_opening_releases_transport(manager, fake_opener, sink):
    fake_opener.gate = threading.Event()
    result = {}

    def do_open():
        result['id'] = manager.open('default', 'web-0', 'app', sink)

    opener_thread = threading.Thread(target=do_open)
    opener_thread.start()
    assert fake_opener.entered.wait(WAIT)

    session = manager.get('default/web-0/app')
    assert session.state is StreamState.OPENING
    manager.stop('default/web-0/app')
    fake_opener.gate.set()
    opener_thread.join(WAIT)

    assert result['id'] == 'default/web-0/app'
    assert session.state is StreamState.STOPPED
    assert fake_opener.transports[('default', 'web-0', 'app')].closed
    assert sink.events == []
    assert len(manager) == 0


def test_sink_may_stop_from_callback(manager, fake_opener):
    holder = {}
    seen = []

    def on_data(chunk):
        seen.append(chunk)
        manager.stop(holder['id'])

    transport = FakeTransport([b'a\n', b'b\n'], hold_before=True, hold_after=True)
    fake_opener.transports[('default', 'web-0', 'app')] = transport
    holder['id'] = manager.open('default', 'web-0', 'app', CallbackSink(on_data, lambda e: None, lambda: None))
    session = manager.get(holder['id'])
    transport.release()
    session.join(WAIT)
    assert seen == [b'a\n']
    assert session.state is StreamState.STOPPED


def test_sessions_listing(manager, fake_cluster, sink):
    stream_id = manager.open('default', 'web-0', 'app', sink)
    assert [s.to_dict() for s in manager.sessions()] == [
        {'streamId': stream_id, 'state': 'Streaming', 'context': 'test'}
    ]
    manager.stop_all()
