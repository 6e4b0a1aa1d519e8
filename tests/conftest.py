"""
Shared pytest fixtures for Kubelog tests.

This module provides common fixtures including:
- FakeTransport: Scripted log stream with gated reads and injected errors
- FakeOpener: Records log stream open requests and hands out transports
- FakeCluster: Cluster session stand-in returning a mock handle
- RecordingSink: Sink that records events and signals termination
- write_kubeconfig: Writes kubeconfig documents into tmp_path
- build_service: ViewerService over a kubeconfig file with fake clients
"""

import threading
from typing import Any, Dict, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest
import yaml

from kubelog.cluster import ClusterHandle, ClusterSession
from kubelog.contexts import ContextRegistry, KubeconfigSource
from kubelog.exceptions import NotInitializedError
from kubelog.resources import ResourceLister
from kubelog.service import ViewerService
from kubelog.sinks import LogSink
from kubelog.streams import LogStreamManager

WAIT = 5.0


class FakeTransport:
    """
    Scripted stand-in for PodLogTransport.

    Yields ``chunks`` in order. With ``hold_before`` it blocks before the
    first chunk, with ``hold_after`` it blocks after the last one, in both
    cases until ``release`` or ``close``. A read interrupted by ``close``
    raises, like a socket shut down under a blocked read. ``error`` is raised
    after the chunks instead of a clean end.
    """

    def __init__(self, chunks=(), error: Optional[Exception] = None,
                 hold_before: bool = False, hold_after: bool = False):
        self._chunks = list(chunks)
        self._error = error
        self._hold_before = hold_before
        self._hold_after = hold_after
        self._released = threading.Event()
        self.closed = False
        self.close_calls = 0

    def release(self) -> None:
        self._released.set()

    def _wait(self) -> None:
        self._released.wait(WAIT)
        if self.closed:
            raise ConnectionResetError("transport closed")

    def chunks(self):
        if self._hold_before:
            self._wait()
        for chunk in self._chunks:
            if self.closed:
                raise ConnectionResetError("transport closed")
            yield chunk
        if self._hold_after:
            self._wait()
        if self._error is not None:
            raise self._error

    def close(self) -> None:
        self.close_calls += 1
        self.closed = True
        self._released.set()


class FakeOpener:
    """Callable with the open_log_stream signature that records every call."""

    def __init__(self):
        self.calls: List[Tuple[Any, ...]] = []
        self.transports: Dict[Tuple[str, str, Optional[str]], FakeTransport] = {}
        self.error: Optional[Exception] = None
        self.entered = threading.Event()
        self.gate: Optional[threading.Event] = None

    def __call__(self, handle, namespace, pod, container, options):
        self.calls.append((handle, namespace, pod, container, options))
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(WAIT)
        if self.error is not None:
            raise self.error
        key = (namespace, pod, container)
        if key not in self.transports:
            self.transports[key] = FakeTransport(hold_after=True)
        return self.transports[key]


class FakeCluster:
    """Cluster session stand-in; ``handle()`` returns a ClusterHandle with mock clients."""

    def __init__(self, context: str = "test"):
        self.core = MagicMock()
        self.current: Optional[ClusterHandle] = ClusterHandle(
            context=context, api_client=MagicMock(), core=self.core, generation=1)

    @property
    def active(self) -> bool:
        return self.current is not None

    def handle(self) -> ClusterHandle:
        if self.current is None:
            raise NotInitializedError("No active cluster session")
        return self.current


class RecordingSink(LogSink):
    """Sink that records (kind, stream_id, payload) tuples in order."""

    def __init__(self):
        self.events: List[Tuple[str, str, Any]] = []
        self.done = threading.Event()
        self._lock = threading.Lock()

    def on_data(self, stream_id, chunk):
        with self._lock:
            self.events.append(('data', stream_id, chunk))

    def on_error(self, stream_id, error):
        with self._lock:
            self.events.append(('error', stream_id, error))
        self.done.set()

    def on_end(self, stream_id):
        with self._lock:
            self.events.append(('end', stream_id, None))
        self.done.set()

    def kinds(self) -> List[str]:
        with self._lock:
            return [e[0] for e in self.events]

    def data(self) -> List[bytes]:
        with self._lock:
            return [e[2] for e in self.events if e[0] == 'data']


def kubeconfig_doc(contexts, current: Optional[str] = None) -> Dict[str, Any]:
    """Build a kubeconfig document with one cluster/user per context name."""
    doc: Dict[str, Any] = {
        'apiVersion': 'v1',
        'kind': 'Config',
        'clusters': [{'name': f"{c}-cluster", 'cluster': {'server': f"https://{c}.example.com"}} for c in contexts],
        'users': [{'name': f"{c}-user", 'user': {'token': 'secret'}} for c in contexts],
        'contexts': [
            {'name': c, 'context': {'cluster': f"{c}-cluster", 'user': f"{c}-user"}} for c in contexts
        ],
    }
    if current:
        doc['current-context'] = current
    return doc


@pytest.fixture
def write_kubeconfig(tmp_path):
    def _write(doc: Any, name: str = "config") -> str:
        path = tmp_path / name
        path.write_text(doc if isinstance(doc, str) else yaml.safe_dump(doc), encoding='utf-8')
        return str(path)
    return _write


@pytest.fixture
def fake_cluster():
    return FakeCluster()


@pytest.fixture
def fake_opener():
    return FakeOpener()


@pytest.fixture
def sink():
    return RecordingSink()


def build_service(path: str, opener: Optional[FakeOpener] = None, factory=None,
                  initial_context: Optional[str] = None) -> ViewerService:
    """ViewerService wired to real contexts/session objects, mock API clients and a fake opener."""
    registry = ContextRegistry(KubeconfigSource(path))
    cluster = ClusterSession(registry, client_factory=factory or (lambda ctx: MagicMock()))
    streams = LogStreamManager(cluster, opener=opener or FakeOpener())
    return ViewerService(registry, cluster, ResourceLister(cluster), streams, initial_context=initial_context)
