"""
Viewer service for Kubelog.

ViewerService is the request surface the HTTP and WebSocket layers talk to.
It wires the context registry, cluster session, resource lister and log
stream manager together, validates request parameters, and runs the blocking
Kubernetes calls in the default executor so the event loop stays responsive.

Every operation either returns a JSON-ready payload or raises a KubelogError
whose ``to_dict()`` is the structured failure reason.

Example:
    ```python
    service = ViewerService.from_config(config)
    await service.init()
    pods = await service.list_pods("default")
    ```
"""

import asyncio
import functools
import logging
from typing import Any, Dict, List, Optional

from .cluster import ClusterSession
from .constants import DEFAULT_FETCH_TAIL_LINES
from .contexts import ContextRegistry, KubeconfigSource
from .kube import fetch_logs
from .models import LogStreamOptions, ServerConfig
from .resources import ResourceLister
from .sinks import LogSink
from .streams import LogStreamManager
from .validation import (
    validate_namespace, validate_pod_name, validate_container_name,
    validate_context_name, validate_tail_lines
)

log = logging.getLogger('kubelog')


class ViewerService:
    """
    Request operations of the viewer.

    Attributes:
        registry: Loaded kubeconfig contexts and the current selection
        cluster: Active cluster session
        lister: Namespace and pod listing
        streams: Log stream session manager
    """

    def __init__(
        self,
        registry: ContextRegistry,
        cluster: ClusterSession,
        lister: ResourceLister,
        streams: LogStreamManager,
        initial_context: Optional[str] = None,
    ):
        self.registry = registry
        self.cluster = cluster
        self.lister = lister
        self.streams = streams
        self._initial_context = initial_context

    @classmethod
    def from_config(cls, config: ServerConfig) -> 'ViewerService':
        registry = ContextRegistry(KubeconfigSource(config.kubeconfig))
        cluster = ClusterSession(registry)
        streams = LogStreamManager(cluster, options=LogStreamOptions(tail_lines=config.tail_lines))
        return cls(registry, cluster, ResourceLister(cluster), streams, initial_context=config.context)

    async def _run(self, fn, *args, **kwargs):
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))

    @property
    def initialized(self) -> bool:
        return self.cluster.active

    async def init(self) -> Dict[str, Any]:
        """
        Load contexts and activate the current one.

        Safe to call again: contexts are re-read and a fresh client is built.
        Live streams keep running against the handle they were opened with.

        Raises:
            UnknownContextError: The startup context is not defined. Only the
                first init tries it; the next one uses the kubeconfig's
                current-context.
        """
        contexts = await self._run(self.registry.load_contexts)
        # The startup context is tried once; a bad name must not block later inits.
        initial, self._initial_context = self._initial_context, None
        if initial:
            self.registry.set_current(initial)
        current = self.registry.current_context()
        await self._run(self.cluster.activate, current)
        return {'contexts': [c.to_dict() for c in contexts], 'current': current}

    async def list_contexts(self) -> List[Dict[str, str]]:
        return [c.to_dict() for c in self.registry.contexts()]

    async def get_current_context(self) -> str:
        return self.registry.current_context()

    async def switch_context(self, name: Any, stop_streams: bool = True) -> Dict[str, Any]:
        """
        Make another context active.

        Streams opened against the old cluster are stopped first unless
        stop_streams is False, in which case they keep running on the old
        handle until the caller stops them.

        Raises:
            UnknownContextError: Name not loaded; nothing changes
            ConnectionSetupFailedError: Client could not be built; no session
                is active until a switch or init succeeds
        """
        name = validate_context_name(name)
        self.registry.get(name)
        stopped = self.streams.stop_all() if stop_streams else 0
        self.registry.set_current(name)
        await self._run(self.cluster.activate, name)
        return {'context': name, 'stoppedStreams': stopped}

    async def list_namespaces(self) -> List[Dict[str, Any]]:
        namespaces = await self._run(self.lister.list_namespaces)
        return [ns.to_dict() for ns in namespaces]

    async def list_pods(self, namespace: Any) -> List[Dict[str, Any]]:
        namespace = validate_namespace(namespace)
        pods = await self._run(self.lister.list_pods, namespace)
        return [p.to_dict() for p in pods]

    async def start_log_stream(self, namespace: Any, pod: Any, container: Any, sink: LogSink) -> str:
        namespace = validate_namespace(namespace)
        pod = validate_pod_name(pod)
        container = validate_container_name(container)
        return await self._run(self.streams.open, namespace, pod, container, sink)

    async def stop_log_stream(self, stream_id: Any) -> None:
        if not isinstance(stream_id, str):
            return
        self.streams.stop(stream_id)

    async def list_log_streams(self) -> List[Dict[str, str]]:
        return [s.to_dict() for s in self.streams.sessions()]

    async def fetch_logs(
        self, namespace: Any, pod: Any, container: Any = None, tail_lines: Any = DEFAULT_FETCH_TAIL_LINES
    ) -> str:
        namespace = validate_namespace(namespace)
        pod = validate_pod_name(pod)
        container = validate_container_name(container)
        tail_lines = validate_tail_lines(tail_lines, request=True)
        handle = self.cluster.handle()
        return await self._run(fetch_logs, handle, namespace, pod, container, tail_lines)

    def shutdown(self) -> int:
        """Stop every log stream; must run before the process exits."""
        stopped = self.streams.stop_all()
        log.info(f"[server] shutdown stopped {stopped} log streams")
        return stopped
