"""
Log stream session management for Kubelog.

This module multiplexes any number of concurrent follow-mode log streams, one
per (namespace, pod, container) key, and guarantees each one is torn down
exactly once.

Key Components:
- stream_key / stream_id_for: Build the key and its "ns/pod/container" identity
- LogStreamSession: One tracked stream and its state machine
- LogStreamManager: Session table plus open/stop/stop_all

Lifecycle of a session::

    Opening --remote handle--> Streaming --clean close--> Ended
       |                          |--transport error--> Failed
       |--remote refusal--> Failed
       |--stop-----------> Stopped <--stop--|

Every session has its own reader thread that pushes raw chunks to the
session's sink in arrival order; the manager never polls. Ended and Failed are
reported to the sink exactly once and are mutually exclusive. Stopped is
caller-initiated and reports nothing. Data delivery and the stop transition
take the same per-session lock, so no chunk is delivered after ``stop``
returns.

Opening a key that is still tracked raises StreamAlreadyOpenError; changing
container or pod means stop the old key, then open the new one.

Example:
    ```python
    manager = LogStreamManager(cluster_session)
    stream_id = manager.open("default", "web-0", "app", sink)
    ...
    manager.stop(stream_id)
    ```
"""

import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

from .cluster import ClusterHandle, ClusterSession
from .constants import DEFAULT_CONTAINER_LABEL, STREAM_ID_SEPARATOR, STREAM_THREAD_PREFIX
from .exceptions import KubelogError, StreamAlreadyOpenError
from .kube import PodLogTransport, classify_api_error, open_log_stream
from .models import LogStreamOptions, StreamState
from .sinks import LogSink

log = logging.getLogger('kubelog')

StreamKey = Tuple[str, str, str]
StreamOpener = Callable[[ClusterHandle, str, str, Optional[str], LogStreamOptions], PodLogTransport]


def _log_exception(msg: str, exc: Exception, level: int = logging.WARNING):
    """Log an exception with proper formatting."""
    log.log(level, f"{msg}: {exc.__class__.__name__}: {exc}")


def stream_key(namespace: str, pod: str, container: Optional[str] = None) -> StreamKey:
    return (namespace, pod, container or DEFAULT_CONTAINER_LABEL)


def stream_id_for(namespace: str, pod: str, container: Optional[str] = None) -> str:
    return STREAM_ID_SEPARATOR.join(stream_key(namespace, pod, container))


class LogStreamSession:
    """
    One tracked log stream.

    Attributes:
        key: (namespace, pod, container-or-"default")
        stream_id: key joined by "/"
        context: Name of the context whose handle opened the stream
        sink: Receiver of this session's events
        state: Current StreamState
        error: Error that failed the session, if any
    """

    def __init__(self, key: StreamKey, sink: LogSink, context: str):
        self.key = key
        self.stream_id = STREAM_ID_SEPARATOR.join(key)
        self.context = context
        self.sink = sink
        self.state = StreamState.OPENING
        self.error: Optional[Exception] = None
        # Reentrant so a sink may call stop() from inside a callback.
        self._lock = threading.RLock()
        self._transport: Optional[PodLogTransport] = None
        self._thread: Optional[threading.Thread] = None

    def __repr__(self) -> str:
        return f"LogStreamSession({self.stream_id!r}, state={self.state.value})"

    def to_dict(self) -> Dict[str, str]:
        return {'streamId': self.stream_id, 'state': self.state.value, 'context': self.context}

    def attach(self, transport: PodLogTransport) -> bool:
        """Move Opening -> Streaming; False when the session was stopped meanwhile."""
        with self._lock:
            if self.state is not StreamState.OPENING:
                return False
            self._transport = transport
            self.state = StreamState.STREAMING
            return True

    def refuse(self, error: Exception) -> None:
        with self._lock:
            if self.state is StreamState.OPENING:
                self.state = StreamState.FAILED
                self.error = error

    def stop(self) -> bool:
        """Release the transport and mark the session Stopped; False if already terminal."""
        with self._lock:
            if self.state.terminal:
                return False
            self.state = StreamState.STOPPED
            transport = self._transport
        if transport is not None:
            transport.close()
        return True

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the reader thread to exit (no-op if it never started)."""
        if self._thread is not None:
            self._thread.join(timeout)


class LogStreamManager:
    """
    Opens, tracks and tears down log stream sessions.

    The session table is guarded by a lock and is only touched by open, stop,
    stop_all and the reader threads' terminal transitions. The cluster handle
    is requested fresh on every open.
    """

    def __init__(
        self,
        cluster: ClusterSession,
        opener: StreamOpener = open_log_stream,
        options: Optional[LogStreamOptions] = None,
    ):
        self._cluster = cluster
        self._opener = opener
        self._options = options or LogStreamOptions()
        self._lock = threading.Lock()
        self._sessions: Dict[str, LogStreamSession] = {}

    @property
    def options(self) -> LogStreamOptions:
        return self._options

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def get(self, stream_id: str) -> Optional[LogStreamSession]:
        with self._lock:
            return self._sessions.get(stream_id)

    def sessions(self) -> List[LogStreamSession]:
        with self._lock:
            return list(self._sessions.values())

    def _discard(self, session: LogStreamSession) -> None:
        with self._lock:
            if self._sessions.get(session.stream_id) is session:
                del self._sessions[session.stream_id]

    def open(self, namespace: str, pod: str, container: Optional[str], sink: LogSink) -> str:
        """
        Open a follow-mode log stream and return its identity string.

        The session is in the table before the remote call starts, so a
        concurrent ``stop`` always finds it. Returns as soon as the remote
        stream handle is established; data arrives on the sink afterwards.

        Raises:
            NotInitializedError: No active cluster session
            StreamAlreadyOpenError: The key is still tracked
            StreamOpenRefusedError: Pod/container missing or not running
            RemoteUnavailableError: Network, auth or server failure
        """
        container = container or None
        handle = self._cluster.handle()
        session = LogStreamSession(stream_key(namespace, pod, container), sink, handle.context)

        with self._lock:
            if session.stream_id in self._sessions:
                raise StreamAlreadyOpenError(f"Log stream {session.stream_id} is already open")
            self._sessions[session.stream_id] = session
        log.info(f"[stream] opening {session.stream_id} context={handle.context}")

        try:
            transport = self._opener(handle, namespace, pod, container, self._options)
        except Exception as e:
            err = e if isinstance(e, KubelogError) else classify_api_error(e)
            session.refuse(err)
            self._discard(session)
            _log_exception(f"[stream] open refused {session.stream_id}", err)
            if err is e:
                raise
            raise err from e

        if not session.attach(transport):
            transport.close()
            log.info(f"[stream] {session.stream_id} stopped while opening, released transport")
            return session.stream_id

        thread = threading.Thread(
            target=self._pump,
            args=(session, transport),
            name=f"{STREAM_THREAD_PREFIX}:{session.stream_id}",
            daemon=True,
        )
        session._thread = thread
        thread.start()
        log.info(f"[stream] started {session.stream_id}")
        return session.stream_id

    def _pump(self, session: LogStreamSession, transport: PodLogTransport) -> None:
        error: Optional[Exception] = None
        try:
            for chunk in transport.chunks():
                with session._lock:
                    if session.state is not StreamState.STREAMING:
                        break
                    session.sink.on_data(session.stream_id, chunk)
        except Exception as e:
            error = e
        self._finish(session, transport, error)

    def _finish(self, session: LogStreamSession, transport: PodLogTransport, error: Optional[Exception]) -> None:
        with session._lock:
            if session.state is not StreamState.STREAMING:
                # Stopped: stop() already released the transport, and read errors
                # caused by that release are expected.
                log.debug(f"[stream] reader for {session.stream_id} exited after {session.state.value}")
                return
            session.state = StreamState.FAILED if error is not None else StreamState.ENDED
            session.error = error
            self._discard(session)
            transport.close()
            try:
                if error is not None:
                    _log_exception(f"[stream] {session.stream_id} failed", error)
                    session.sink.on_error(session.stream_id, error)
                else:
                    log.info(f"[stream] {session.stream_id} ended")
                    session.sink.on_end(session.stream_id)
            except Exception as e:
                _log_exception(f"[stream] sink raised while closing {session.stream_id}", e, logging.ERROR)

    def stop(self, stream_id: str) -> None:
        """Stop a session; unknown or already finished ids are a no-op."""
        with self._lock:
            session = self._sessions.pop(stream_id, None)
        if session is None:
            log.debug(f"[stream] stop for unknown stream {stream_id} ignored")
            return
        if session.stop():
            log.info(f"[stream] stopped {stream_id}")

    def stop_all(self) -> int:
        """Stop every tracked session; returns how many were stopped."""
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        stopped = sum(1 for s in sessions if s.stop())
        if sessions:
            log.info(f"[stream] stopped {stopped} of {len(sessions)} streams")
        return stopped
