"""
Data models for Kubelog.

This module defines the data structures used throughout the Kubelog
application: configured contexts, the namespace and pod views returned by the
resource lister, log stream options and states, and the event records pushed
to consumers.

Key Models:
- Context: One configured cluster entry from kubeconfig
- NamespaceInfo: Namespace view for listing
- PodSummary: Pod view with derived readiness, restarts and age
- LogStreamOptions: Options sent with every remote log request
- StreamState: Lifecycle states of a log stream session
- LogEvent: One event delivered to a consumer for a stream
- ServerConfig: Server configuration parameters

Views are recomputed on every list call and never cached.

Example:
    ```python
    ctx = Context(name="prod", cluster="prod-eu", namespace="web", user="admin")
    print(ctx.to_dict())
    ```
"""

import enum
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Dict, Any, Optional, List

from .constants import DEFAULT_NAMESPACE, DEFAULT_TAIL_LINES


@dataclass(frozen=True)
class Context:
    """
    One configured cluster context.

    Immutable once loaded; the set of contexts is refreshed only by reloading
    the kubeconfig source.

    Attributes:
        name: Context name (unique key)
        cluster: Name of the cluster entry the context refers to
        namespace: Default namespace of the context ("default" when unset)
        user: Name of the user/credential entry the context refers to
    """
    name: str
    cluster: str
    namespace: str = DEFAULT_NAMESPACE
    user: str = ""

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


@dataclass
class NamespaceInfo:
    """
    Namespace data for listing.

    Attributes:
        name: Namespace name
        status: Namespace phase (Active, Terminating)
        creation_timestamp: When the namespace was created (None if unknown)
        labels: Namespace labels
    """
    name: str
    status: str
    creation_timestamp: Optional[datetime] = None
    labels: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'status': self.status,
            'creationTimestamp': self.creation_timestamp.isoformat() if self.creation_timestamp else None,
            'labels': dict(self.labels),
        }


@dataclass
class PodSummary:
    """
    Simplified pod data for table display.

    Readiness, restarts and age are derived at list time and never read raw
    from the API.

    Attributes:
        name: Pod name
        namespace: Kubernetes namespace
        phase: Pod phase (Running, Pending, Failed, etc.)
        ready: Readiness fraction "ready/total" over declared containers
        restarts: Sum of restart counts over all container statuses
        age: Coarsest-unit age string ("3d0h", "1h30m", "5m", "45s")
        containers: Declared container names in spec order
        labels: Pod labels

    Example:
        ```python
        summary = PodSummary(
            name="web-0",
            namespace="default",
            phase="Running",
            ready="2/2",
            restarts=0,
            age="1h30m",
            containers=["app", "sidecar"],
        )
        ```
    """
    name: str
    namespace: str
    phase: str
    ready: str
    restarts: int
    age: str
    containers: List[str] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LogStreamOptions:
    """Options attached to every remote log request."""
    follow: bool = True
    tail_lines: Optional[int] = DEFAULT_TAIL_LINES
    timestamps: bool = True
    pretty: bool = False


class StreamState(str, enum.Enum):
    """Lifecycle of a log stream session.

    OPENING -> STREAMING -> ENDED | FAILED | STOPPED, and OPENING -> FAILED
    when the remote refuses the stream. OPENING -> STOPPED happens when stop
    races with open.
    """
    OPENING = "Opening"
    STREAMING = "Streaming"
    ENDED = "Ended"
    FAILED = "Failed"
    STOPPED = "Stopped"

    @property
    def terminal(self) -> bool:
        return self in (StreamState.ENDED, StreamState.FAILED, StreamState.STOPPED)


@dataclass
class LogEvent:
    """
    One event delivered to a consumer for a log stream.

    Attributes:
        type: Event type (logData, logError, logEnd)
        stream_id: Identity string of the stream ("namespace/pod/container")
        data: Decoded log text (logData only)
        error: Error message (logError only)

    Example:
        ```python
        event = LogEvent(type="logData", stream_id="default/web-0/app",
                         data="2024-01-15T10:30:45Z Starting application...\\n")
        ```
    """
    type: str
    stream_id: str
    data: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        msg: Dict[str, Any] = {'type': self.type, 'streamId': self.stream_id}
        if self.data is not None:
            msg['data'] = self.data
        if self.error is not None:
            msg['error'] = self.error
        return msg


@dataclass
class ServerConfig:
    """
    Server configuration parameters.

    Attributes:
        host: Server bind host
        port: Server port
        kubeconfig: Path(s) to kubeconfig (None follows KUBECONFIG / ~/.kube/config)
        context: Context to activate at startup (None uses kubeconfig's current-context)
        tail_lines: Backfill window for new log streams
        log_level: Application log level
        uvicorn_log_level: Uvicorn server log level
    """
    host: str
    port: int
    kubeconfig: Optional[str] = None
    context: Optional[str] = None
    tail_lines: int = DEFAULT_TAIL_LINES
    log_level: str = "INFO"
    uvicorn_log_level: str = "info"
