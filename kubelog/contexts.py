"""
Kubeconfig contexts for Kubelog.

This module reads the set of configured clusters ("contexts") and tracks which
one is active.

Key Components:
- KubeconfigSource: Reads and merges kubeconfig files into one document
- ContextRegistry: Loaded contexts, the current selection, and change listeners

KUBECONFIG may name several files separated by the platform path separator.
They are merged the way kubectl merges them: the first file that sets
``current-context`` wins, and the first definition of any context, cluster or
user name wins. Relative credential file paths are resolved against the
directory of the file that defined them. The selection is kept in memory only;
kubeconfig files are never written.

Example:
    ```python
    registry = ContextRegistry(KubeconfigSource())
    contexts = registry.load_contexts()
    registry.set_current(contexts[0].name)
    ```
"""

import copy
import logging
import os
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml
from kubernetes import config
from kubernetes.config.incluster_config import SERVICE_HOST_ENV_NAME

from .constants import DEFAULT_NAMESPACE, IN_CLUSTER_CONTEXT, SERVICE_ACCOUNT_NAMESPACE_FILE
from .exceptions import (
    ConfigUnavailableError, NoContextsFoundError, UnknownContextError, NotInitializedError
)
from .models import Context

log = logging.getLogger('kubelog')

_SECTIONS = ('clusters', 'users', 'contexts')

# Keys holding file paths that kubeconfig allows to be relative to the file.
_PATH_KEYS = {
    'clusters': ('cluster', ('certificate-authority',)),
    'users': ('user', ('client-certificate', 'client-key', 'tokenFile')),
}


def kubeconfig_paths(kubeconfig: Optional[str] = None) -> List[str]:
    """Resolve the kubeconfig file list from an explicit value, KUBECONFIG, or the default."""
    raw = kubeconfig or os.environ.get('KUBECONFIG') or config.KUBE_CONFIG_DEFAULT_LOCATION
    return [os.path.expanduser(p) for p in raw.split(os.pathsep) if p.strip()]


def _absolutize(entry: Dict[str, Any], section: str, base_dir: str) -> Dict[str, Any]:
    if section not in _PATH_KEYS:
        return entry
    inner_key, keys = _PATH_KEYS[section]
    inner = entry.get(inner_key)
    if not isinstance(inner, dict):
        return entry
    entry = copy.deepcopy(entry)
    for key in keys:
        value = entry[inner_key].get(key)
        if isinstance(value, str) and value and not os.path.isabs(value):
            entry[inner_key][key] = os.path.join(base_dir, value)
    # exec plugins: a bare name is looked up on PATH, a relative path is file-relative
    exec_cfg = entry[inner_key].get('exec')
    if isinstance(exec_cfg, dict):
        command = exec_cfg.get('command')
        if (isinstance(command, str) and not os.path.isabs(command)
                and (os.sep in command or (os.altsep and os.altsep in command))):
            exec_cfg['command'] = os.path.join(base_dir, command)
    return entry


def merge_kubeconfigs(documents: List[Tuple[str, Dict[str, Any]]]) -> Dict[str, Any]:
    """
    Merge parsed kubeconfig documents into one.

    Args:
        documents: (path, parsed document) pairs in precedence order

    Returns:
        Dict[str, Any]: A single kubeconfig document
    """
    merged: Dict[str, Any] = {'apiVersion': 'v1', 'kind': 'Config', 'preferences': {}}
    seen: Dict[str, set] = {s: set() for s in _SECTIONS}
    for s in _SECTIONS:
        merged[s] = []

    for path, doc in documents:
        if 'current-context' not in merged and doc.get('current-context'):
            merged['current-context'] = doc['current-context']
        base_dir = os.path.dirname(os.path.abspath(path))
        for section in _SECTIONS:
            for entry in doc.get(section) or []:
                if not isinstance(entry, dict) or not entry.get('name'):
                    continue
                if entry['name'] in seen[section]:
                    continue
                seen[section].add(entry['name'])
                merged[section].append(_absolutize(entry, section, base_dir))
    return merged


class KubeconfigSource:
    """
    Context source backed by kubeconfig files.

    Every ``load`` re-reads the files; nothing is cached between loads except
    the last merged document, which the cluster session uses to build clients.

    When no kubeconfig file exists but the process runs inside a pod
    (KUBERNETES_SERVICE_HOST is set), the source yields a single
    ``in-cluster`` context backed by the pod's service account.
    """

    def __init__(self, kubeconfig: Optional[str] = None, namespace_file: str = SERVICE_ACCOUNT_NAMESPACE_FILE):
        self._kubeconfig = kubeconfig
        self._namespace_file = namespace_file
        self._document: Optional[Dict[str, Any]] = None
        self._in_cluster = False

    @property
    def paths(self) -> List[str]:
        return kubeconfig_paths(self._kubeconfig)

    @property
    def in_cluster(self) -> bool:
        """True when the last load fell back to the pod's service account."""
        return self._in_cluster

    def _in_cluster_context(self) -> Context:
        namespace = DEFAULT_NAMESPACE
        try:
            with open(self._namespace_file, 'r', encoding='utf-8') as f:
                namespace = f.read().strip() or DEFAULT_NAMESPACE
        except OSError as e:
            log.debug(f"[contexts] service account namespace unavailable, using '{namespace}': {e}")
        return Context(name=IN_CLUSTER_CONTEXT, cluster=IN_CLUSTER_CONTEXT, namespace=namespace,
                       user="service-account")

    def _read(self, path: str) -> Optional[Dict[str, Any]]:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                doc = yaml.safe_load(f)
        except FileNotFoundError:
            return None
        except (OSError, yaml.YAMLError) as e:
            raise ConfigUnavailableError(f"Cannot read kubeconfig {path}: {e}") from e
        if doc is None:
            return {}
        if not isinstance(doc, dict):
            raise ConfigUnavailableError(f"Invalid kubeconfig {path}: expected a mapping")
        return doc

    def load(self) -> Tuple[List[Context], Optional[str]]:
        """
        Read and merge the kubeconfig files.

        Returns:
            Tuple of the ordered contexts and the current-context name (may be None)

        Raises:
            ConfigUnavailableError: No file could be read outside a pod, or a file is malformed
            NoContextsFoundError: The files parse but define zero contexts
        """
        paths = self.paths
        documents = []
        for path in paths:
            doc = self._read(path)
            if doc is not None:
                documents.append((path, doc))
        if not documents:
            if os.environ.get(SERVICE_HOST_ENV_NAME):
                log.info(f"[contexts] no kubeconfig at {os.pathsep.join(paths)}, using in-cluster config")
                self._document = None
                self._in_cluster = True
                return [self._in_cluster_context()], IN_CLUSTER_CONTEXT
            raise ConfigUnavailableError(f"No kubeconfig found at {os.pathsep.join(paths)}")

        merged = merge_kubeconfigs(documents)
        contexts = []
        for entry in merged['contexts']:
            body = entry.get('context') or {}
            contexts.append(Context(
                name=entry['name'],
                cluster=body.get('cluster', ''),
                namespace=body.get('namespace') or DEFAULT_NAMESPACE,
                user=body.get('user', ''),
            ))
        if not contexts:
            raise NoContextsFoundError(f"No contexts defined in {os.pathsep.join(p for p, _ in documents)}")

        self._document = merged
        self._in_cluster = False
        return contexts, merged.get('current-context')

    def client_config(self) -> Dict[str, Any]:
        """The merged kubeconfig document from the last successful load."""
        if self._document is None:
            raise NotInitializedError("Kubeconfig has not been loaded")
        return self._document


class ContextRegistry:
    """
    Loaded contexts and the active selection.

    Exactly one context is current once contexts are loaded. Listeners
    registered with ``add_listener`` are called with the new name whenever the
    selection changes; the cluster session uses this to drop its client.
    """

    def __init__(self, source: KubeconfigSource):
        self._source = source
        self._lock = threading.Lock()
        self._contexts: List[Context] = []
        self._current: Optional[str] = None
        self._listeners: List[Callable[[str], None]] = []

    @property
    def source(self) -> KubeconfigSource:
        return self._source

    def add_listener(self, listener: Callable[[str], None]) -> None:
        self._listeners.append(listener)

    def load_contexts(self) -> List[Context]:
        contexts, current = self._source.load()
        names = [c.name for c in contexts]
        if current not in names:
            if current:
                log.warning(f"[contexts] current-context '{current}' not defined, using '{names[0]}'")
            current = names[0]
        with self._lock:
            previous = self._current
            self._contexts = contexts
            # A reload keeps the in-memory selection while it still exists.
            if previous not in names:
                self._current = current
        log.info(f"[contexts] loaded {len(contexts)} contexts, current={self._current}")
        return list(contexts)

    def contexts(self) -> List[Context]:
        with self._lock:
            if not self._contexts:
                raise NotInitializedError("Contexts have not been loaded")
            return list(self._contexts)

    def get(self, name: str) -> Context:
        for ctx in self.contexts():
            if ctx.name == name:
                return ctx
        raise UnknownContextError(f"Context '{name}' not found")

    def current_context(self) -> str:
        with self._lock:
            if self._current is None:
                raise NotInitializedError("Contexts have not been loaded")
            return self._current

    def set_current(self, name: str) -> None:
        """
        Select the active context.

        Raises:
            UnknownContextError: If name is not among the loaded contexts.
                The selection is left unchanged.
        """
        self.get(name)
        with self._lock:
            old = self._current
            self._current = name
        log.info(f"[contexts] current changed {old} -> {name}")
        for listener in list(self._listeners):
            listener(name)
