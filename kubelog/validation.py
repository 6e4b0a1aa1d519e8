"""
Input validation and sanitization for Kubelog.

This module validates configuration values (CLI flags and environment
variables) and the parameters that arrive over the request surface before
they reach the Kubernetes API.

Key Functions:
- validate_port: Validates port numbers (1-65535)
- validate_host: Validates host strings
- validate_log_level: Validates logging level names
- validate_tail_lines: Validates log backfill sizes
- validate_namespace / validate_pod_name / validate_container_name:
  Validate Kubernetes object names from requests
- validate_context_name: Validates a requested context name

Configuration functions raise ConfigurationError; request functions raise
InvalidRequestError. Both carry descriptive messages.

Example:
    ```python
    try:
        port = validate_port(8080)
        namespace = validate_namespace(params.get("namespace"))
    except (ConfigurationError, InvalidRequestError) as e:
        print(f"Validation failed: {e}")
    ```
"""

import logging
import re
from typing import Any, Optional

from .constants import MAX_TAIL_LINES, MAX_NAME_LENGTH
from .exceptions import ConfigurationError, InvalidRequestError

# RFC 1123 label (namespaces, containers) and subdomain (pods).
_DNS_LABEL = re.compile(r'^[a-z0-9]([-a-z0-9]*[a-z0-9])?$')
_DNS_SUBDOMAIN = re.compile(r'^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$')
_DNS_LABEL_MAX = 63


def validate_port(port: int) -> int:
    """
    Validate port number for server binding.

    Raises:
        ConfigurationError: If port is not an integer or outside 1-65535
    """
    if not isinstance(port, int) or isinstance(port, bool) or port < 1 or port > 65535:
        raise ConfigurationError(f"Port must be an integer between 1 and 65535, got: {port}")
    return port


def validate_host(host: str) -> str:
    """
    Validate host string for server binding.

    Returns:
        str: The validated and trimmed host string

    Raises:
        ConfigurationError: If host is empty or too long
    """
    if not host or not host.strip():
        raise ConfigurationError("Host cannot be empty")

    host = host.strip()
    if len(host) > MAX_NAME_LENGTH:  # DNS name length limit
        raise ConfigurationError("Host name too long")

    return host


def validate_log_level(level: str) -> str:
    name = (level or '').strip().upper()
    if not isinstance(logging.getLevelName(name), int):
        raise ConfigurationError(f"Unknown log level: {level}")
    return name


def _to_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip('-').isdigit():
        return int(value.strip())
    return None


def validate_tail_lines(value: Any, request: bool = False) -> int:
    """
    Validate a log backfill size (1 to MAX_TAIL_LINES).

    Args:
        value: Integer or numeric string
        request: Raise InvalidRequestError instead of ConfigurationError

    Example:
        ```python
        validate_tail_lines("100")   # 100
        validate_tail_lines(0)       # raises ConfigurationError
        ```
    """
    error = InvalidRequestError if request else ConfigurationError
    n = _to_int(value)
    if n is None or n < 1 or n > MAX_TAIL_LINES:
        raise error(f"Tail lines must be an integer between 1 and {MAX_TAIL_LINES}, got: {value}")
    return n


def _validate_name(value: Any, field: str, pattern: re.Pattern, max_len: int) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequestError(f"{field} is required")
    value = value.strip()
    if len(value) > max_len or not pattern.match(value):
        raise InvalidRequestError(f"Invalid {field}: {value!r}")
    return value


def validate_namespace(value: Any) -> str:
    return _validate_name(value, 'namespace', _DNS_LABEL, _DNS_LABEL_MAX)


def validate_pod_name(value: Any) -> str:
    return _validate_name(value, 'pod name', _DNS_SUBDOMAIN, MAX_NAME_LENGTH)


def validate_container_name(value: Any) -> Optional[str]:
    """Container is optional; None or an empty string means "not specified"."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return _validate_name(value, 'container name', _DNS_LABEL, _DNS_LABEL_MAX)


def validate_context_name(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequestError("Context name is required")
    return value.strip()
