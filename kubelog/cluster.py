"""
Cluster session for Kubelog.

This module owns the one live connection to the active context's API server.
The connection is represented by an immutable ClusterHandle; activating a
context builds a brand new handle and replaces the previous one wholesale.

Callers request the current handle at call time with ``ClusterSession.handle()``
and pass it explicitly to the functions in ``kube.py``. An operation that
captured a handle keeps running against it after a switch; nothing is
retroactively redirected or cancelled.

Example:
    ```python
    session = ClusterSession(registry)
    session.activate("prod")
    handle = session.handle()
    namespaces = list_namespaces(handle)
    ```
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from kubernetes import client, config

from .constants import IN_CLUSTER_CONTEXT
from .contexts import ContextRegistry, KubeconfigSource
from .exceptions import ConnectionSetupFailedError, KubelogError, NotInitializedError
from .models import Context

log = logging.getLogger('kubelog')

ClientFactory = Callable[[Context], client.ApiClient]


@dataclass(frozen=True)
class ClusterHandle:
    """
    Immutable handle to one cluster connection.

    Attributes:
        context: Name of the context the handle was built for
        api_client: ApiClient bound to the context's cluster and user
        core: CoreV1Api built on api_client
        generation: Increments on every activation; a stale handle has a lower value
    """
    context: str
    api_client: client.ApiClient
    core: client.CoreV1Api
    generation: int


def kubeconfig_client_factory(source: KubeconfigSource) -> ClientFactory:
    """
    Build isolated ApiClients from the source's merged kubeconfig document.

    The in-cluster context gets a client configured from the pod's service
    account token and CA instead.
    """
    def _build(ctx: Context) -> client.ApiClient:
        if source.in_cluster and ctx.name == IN_CLUSTER_CONTEXT:
            configuration = client.Configuration()
            config.load_incluster_config(client_configuration=configuration)
            return client.ApiClient(configuration)
        return config.new_client_from_config_dict(
            config_dict=source.client_config(),
            context=ctx.name,
            persist_config=False,
        )
    return _build


class ClusterSession:
    """
    The live connection to the active context.

    At most one handle is active. Selecting another context in the registry
    drops the active handle until ``activate`` builds the next one.
    """

    def __init__(self, registry: ContextRegistry, client_factory: Optional[ClientFactory] = None):
        self._registry = registry
        self._factory = client_factory or kubeconfig_client_factory(registry.source)
        self._lock = threading.Lock()
        self._handle: Optional[ClusterHandle] = None
        self._generation = 0
        registry.add_listener(self._on_context_changed)

    def _on_context_changed(self, name: str) -> None:
        self.invalidate()

    def activate(self, context_name: str) -> ClusterHandle:
        """
        Build a fresh API client for a context and make it the active handle.

        Reachability is not checked here; it surfaces on first use.

        Raises:
            UnknownContextError: If the context is not loaded
            ConnectionSetupFailedError: If the context's cluster/user reference is malformed
        """
        ctx = self._registry.get(context_name)
        try:
            api_client = self._factory(ctx)
        except KubelogError:
            raise
        except Exception as e:
            log.warning(f"[cluster] client setup failed for context={ctx.name}: {e.__class__.__name__}: {e}")
            raise ConnectionSetupFailedError(f"Cannot set up connection for context '{ctx.name}': {e}") from e

        with self._lock:
            self._generation += 1
            handle = ClusterHandle(
                context=ctx.name,
                api_client=api_client,
                core=client.CoreV1Api(api_client),
                generation=self._generation,
            )
            self._handle = handle
        log.info(f"[cluster] activated context={ctx.name} cluster={ctx.cluster} generation={handle.generation}")
        return handle

    def invalidate(self) -> None:
        with self._lock:
            if self._handle is not None:
                log.debug(f"[cluster] dropped handle for context={self._handle.context}")
            self._handle = None

    @property
    def active(self) -> bool:
        with self._lock:
            return self._handle is not None

    def handle(self) -> ClusterHandle:
        """Return the current handle; raises NotInitializedError when none is active."""
        with self._lock:
            if self._handle is None:
                raise NotInitializedError("No active cluster session; initialize or switch context first")
            return self._handle
