"""
Kubernetes API interactions for Kubelog.

This module is the boundary to the cluster API server. Every function takes a
ClusterHandle explicitly so the caller decides which connection an operation
runs against, and every remote failure is classified into a Kubelog error.

Key Components:
- list_namespaces: List raw namespace objects
- list_pods: List raw pod objects in one namespace
- open_log_stream: Open a follow-mode log stream and wrap it in a PodLogTransport
- fetch_logs: Read a bounded, non-follow slice of a container's log
- classify_api_error: Map ApiException and transport errors to the error taxonomy

All functions block for one remote round trip; async callers run them in an
executor.

Example:
    ```python
    handle = session.handle()
    transport = open_log_stream(handle, "default", "web-0", "app", LogStreamOptions())
    for chunk in transport.chunks():
        print(chunk.decode())
    ```
"""

from __future__ import annotations
import json
import logging
import threading
from typing import Any, Dict, Iterator, List, Optional, Type

import urllib3
from kubernetes import client
from kubernetes.client import ApiException

from .cluster import ClusterHandle
from .constants import LOG_STREAM_CHUNK_SIZE, FETCH_LOGS_TIMEOUT_SECONDS, DEFAULT_FETCH_TAIL_LINES
from .exceptions import (
    KubelogError, RemoteUnavailableError, NamespaceNotFoundError, StreamOpenRefusedError
)
from .models import LogStreamOptions

log = logging.getLogger('kubelog')


def _api_message(exc: ApiException) -> str:
    """Extract the human-readable message from an API Status body."""
    body = getattr(exc, 'body', None)
    if body:
        try:
            status = json.loads(body)
            if isinstance(status, dict) and status.get('message'):
                return status['message']
        except (TypeError, ValueError):
            pass
    return exc.reason or f"HTTP {exc.status}"


def classify_api_error(
    exc: Exception,
    not_found: Type[KubelogError] = RemoteUnavailableError,
    refused_statuses: tuple = (404,),
) -> KubelogError:
    """
    Map a remote failure to the Kubelog error taxonomy.

    Args:
        exc: Exception raised by the kubernetes client or urllib3
        not_found: Error class for statuses in refused_statuses
        refused_statuses: HTTP statuses that mean "the thing asked for is not there"

    Returns:
        KubelogError: The classified error, with exc chained as its cause
    """
    if isinstance(exc, KubelogError):
        return exc
    if isinstance(exc, ApiException):
        message = _api_message(exc)
        if exc.status in refused_statuses:
            err: KubelogError = not_found(message)
        elif exc.status in (401, 403):
            err = RemoteUnavailableError(f"Access denied ({exc.status}): {message}")
        else:
            err = RemoteUnavailableError(f"API server error ({exc.status}): {message}")
    elif isinstance(exc, (urllib3.exceptions.HTTPError, OSError)):
        err = RemoteUnavailableError(f"Cannot reach API server: {exc}")
    else:
        err = RemoteUnavailableError(f"{exc.__class__.__name__}: {exc}")
    err.__cause__ = exc
    return err


def list_namespaces(handle: ClusterHandle) -> List[client.V1Namespace]:
    """List namespaces in the handle's cluster in server order."""
    try:
        return list(handle.core.list_namespace().items or [])
    except Exception as e:
        raise classify_api_error(e) from e


def list_pods(handle: ClusterHandle, namespace: str) -> List[client.V1Pod]:
    """
    List pods of one namespace in server order.

    Raises:
        NamespaceNotFoundError: The API answered 404 for the namespace
        RemoteUnavailableError: Any other failure
    """
    try:
        return list(handle.core.list_namespaced_pod(namespace=namespace).items or [])
    except Exception as e:
        raise classify_api_error(e, not_found=NamespaceNotFoundError) from e


class PodLogTransport:
    """
    Raw follow-mode log response for one container.

    ``chunks`` yields the bytes exactly as the server sent them. ``close`` may
    be called from any thread; it unblocks a pending read and is idempotent.
    """

    def __init__(self, response: urllib3.response.HTTPResponse, chunk_size: int = LOG_STREAM_CHUNK_SIZE):
        self._response = response
        self._chunk_size = chunk_size
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def chunks(self) -> Iterator[bytes]:
        for chunk in self._response.stream(self._chunk_size, decode_content=True):
            if chunk:
                yield chunk

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        # shutdown() interrupts a read blocked in another thread.
        self._response.shutdown()
        self._response.close()


def _log_kwargs(container: Optional[str], options: LogStreamOptions) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {
        'follow': options.follow,
        'timestamps': options.timestamps,
        'pretty': 'true' if options.pretty else 'false',
    }
    if container:
        kwargs['container'] = container
    if options.tail_lines is not None:
        kwargs['tail_lines'] = options.tail_lines
    return kwargs


def open_log_stream(
    handle: ClusterHandle,
    namespace: str,
    pod: str,
    container: Optional[str],
    options: LogStreamOptions,
) -> PodLogTransport:
    """
    Open a log stream and return once the response headers arrive.

    Raises:
        StreamOpenRefusedError: Pod or container missing, or container not running
        RemoteUnavailableError: Network, auth or server failure
    """
    log.debug(f"[stream] GET log {namespace}/{pod} container={container} context={handle.context}")
    try:
        response = handle.core.read_namespaced_pod_log(
            name=pod,
            namespace=namespace,
            _preload_content=False,
            **_log_kwargs(container, options),
        )
    except Exception as e:
        raise classify_api_error(e, not_found=StreamOpenRefusedError, refused_statuses=(400, 404)) from e
    return PodLogTransport(response)


def fetch_logs(
    handle: ClusterHandle,
    namespace: str,
    pod: str,
    container: Optional[str],
    tail_lines: int = DEFAULT_FETCH_TAIL_LINES,
) -> str:
    """Read the last tail_lines lines of a container's log without following."""
    options = LogStreamOptions(follow=False, tail_lines=tail_lines, timestamps=True)
    log.debug(f"[stream] fetch {tail_lines} lines {namespace}/{pod} container={container}")
    try:
        return handle.core.read_namespaced_pod_log(
            name=pod,
            namespace=namespace,
            _request_timeout=FETCH_LOGS_TIMEOUT_SECONDS,
            **_log_kwargs(container, options),
        )
    except Exception as e:
        raise classify_api_error(e, not_found=StreamOpenRefusedError, refused_statuses=(400, 404)) from e
