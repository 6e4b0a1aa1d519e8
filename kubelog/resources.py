"""
Namespace and pod listing for Kubelog.

The lister reads the cluster session's current handle on every call and never
caches results; each call is one remote round trip and the returned order is
the server's order.
"""

import logging
from datetime import datetime, timezone
from typing import List

from .cluster import ClusterSession
from .kube import list_namespaces, list_pods
from .models import NamespaceInfo, PodSummary
from .pod_processing import namespace_to_info, pod_to_summary

log = logging.getLogger('kubelog')


class ResourceLister:
    """Lists namespaces and pods against the active cluster handle."""

    def __init__(self, session: ClusterSession):
        self._session = session

    def list_namespaces(self) -> List[NamespaceInfo]:
        handle = self._session.handle()
        items = list_namespaces(handle)
        log.debug(f"[pods] context={handle.context} namespaces={len(items)}")
        return [namespace_to_info(ns) for ns in items]

    def list_pods(self, namespace: str) -> List[PodSummary]:
        """
        List pods of a namespace with derived readiness, restarts and age.

        Age is computed against a single wall-clock reading taken when the
        response arrives, so every pod in one result shares the same "now".

        Raises:
            NamespaceNotFoundError: The namespace does not exist
            RemoteUnavailableError: Network, auth or server failure
        """
        handle = self._session.handle()
        items = list_pods(handle, namespace)
        now = datetime.now(timezone.utc)
        log.debug(f"[pods] context={handle.context} namespace={namespace} pods={len(items)}")
        return [pod_to_summary(p, now) for p in items]
