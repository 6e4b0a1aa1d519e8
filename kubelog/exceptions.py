"""
Custom exceptions for Kubelog.

This module defines the exception classes used throughout the Kubelog
application. Every exception carries a ``kind`` string so a caller on the far
side of the request/event surface can branch on the failure (for example retry
a connection setup failure but not an unknown context) without parsing the
message text.

Exception Hierarchy:
- KubelogError: Base exception for all Kubelog-specific errors
  - ConfigUnavailableError: kubeconfig cannot be read or parsed
  - NoContextsFoundError: kubeconfig parses but defines no contexts
  - UnknownContextError: requested context is not among loaded contexts
  - ConnectionSetupFailedError: API client cannot be built for a context
  - RemoteUnavailableError: network/auth/server failure talking to the API
  - NamespaceNotFoundError: requested namespace does not exist
  - StreamOpenRefusedError: pod/container missing or not running
  - StreamAlreadyOpenError: a log stream for the same key is still tracked
  - NotInitializedError: request issued before the viewer was initialized
  - InvalidRequestError: malformed request parameters
  - ConfigurationError: invalid CLI or environment configuration

Example:
    ```python
    try:
        registry.set_current("staging")
    except UnknownContextError as e:
        print(f"{e.kind}: {e}")
    ```
"""

from typing import Any, Dict


class KubelogError(Exception):
    """Base exception for Kubelog errors."""

    kind = "KubelogError"
    http_status = 500
    retryable = False

    def to_dict(self) -> Dict[str, Any]:
        """Structured failure reason for the request surface."""
        return {"kind": self.kind, "message": str(self), "retryable": self.retryable}


class ConfigUnavailableError(KubelogError):
    """Raised when the kubeconfig source cannot be read or parsed."""
    kind = "ConfigUnavailable"
    http_status = 503


class NoContextsFoundError(KubelogError):
    """Raised when the kubeconfig source parses but defines zero contexts."""
    kind = "NoContextsFound"
    http_status = 503


class UnknownContextError(KubelogError):
    """Raised when a context name is not among the loaded contexts."""
    kind = "UnknownContext"
    http_status = 404


class ConnectionSetupFailedError(KubelogError):
    """Raised when an API client cannot be constructed for a context."""
    kind = "ConnectionSetupFailed"
    http_status = 502
    retryable = True


class RemoteUnavailableError(KubelogError):
    """Raised on network, auth or server-side failures of a remote call."""
    kind = "RemoteUnavailable"
    http_status = 502
    retryable = True


class NamespaceNotFoundError(KubelogError):
    """Raised when the requested namespace does not exist."""
    kind = "NamespaceNotFound"
    http_status = 404


class StreamOpenRefusedError(KubelogError):
    """Raised when the remote refuses a log stream (pod/container missing or not running)."""
    kind = "StreamOpenRefused"
    http_status = 409


class StreamAlreadyOpenError(KubelogError):
    """Raised when a log stream is opened for a key that is still tracked."""
    kind = "StreamAlreadyOpen"
    http_status = 409


class NotInitializedError(KubelogError):
    """Raised when a request needs a cluster session before init has succeeded."""
    kind = "NotInitialized"
    http_status = 409


class InvalidRequestError(KubelogError):
    """Raised when request parameters are missing or malformed."""
    kind = "InvalidRequest"
    http_status = 400


class ConfigurationError(KubelogError):
    """Raised when there's a configuration issue."""
    kind = "ConfigurationError"
    http_status = 500
