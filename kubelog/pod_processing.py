"""
Pod and namespace data processing utilities.

This module converts raw Kubernetes API objects into the views returned by
the resource lister. It derives the values the API does not provide directly:
the readiness fraction, the summed restart count and the human age string.

Key Functions:
- format_age: Format an age in seconds using the coarsest unit >= 1
- age_from_timestamp: Age string of a creation timestamp at a given instant
- pod_ready_fraction: "ready/total" over declared containers
- pod_restart_count: Sum of all container restart counts
- pod_to_summary: Convert a V1Pod to a PodSummary
- namespace_to_info: Convert a V1Namespace to a NamespaceInfo

Example:
    ```python
    summary = pod_to_summary(k8s_pod_object, now=datetime.now(timezone.utc))
    print(f"{summary.name} {summary.ready} {summary.age}")
    ```
"""

from datetime import datetime, timezone
from typing import Any, Optional

from .models import NamespaceInfo, PodSummary

UNKNOWN_AGE = "Unknown"


def format_age(seconds: float) -> str:
    """
    Format an age using the coarsest unit that is at least 1.

    Days carry leftover hours, hours carry leftover minutes; minutes and
    seconds stand alone.

    Example:
        ```python
        format_age(90 * 60)        # "1h30m"
        format_age(3 * 86400)      # "3d0h"
        format_age(45)             # "45s"
        ```
    """
    total = max(int(seconds), 0)
    days, rem = divmod(total, 86400)
    hours, rem = divmod(rem, 3600)
    minutes = rem // 60
    if days > 0:
        return f"{days}d{hours}h"
    if hours > 0:
        return f"{hours}h{minutes}m"
    if minutes > 0:
        return f"{minutes}m"
    return f"{total}s"


def age_from_timestamp(created: Optional[datetime], now: Optional[datetime] = None) -> str:
    if created is None:
        return UNKNOWN_AGE
    now = now or datetime.now(timezone.utc)
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return format_age((now - created).total_seconds())


def pod_ready_fraction(p: Any) -> str:
    """Ready containers over declared containers, e.g. "1/2"; "0/0" for no containers."""
    total = len(getattr(p.spec, 'containers', None) or []) if p.spec else 0
    statuses = (p.status.container_statuses or []) if p.status else []
    ready = sum(1 for c in statuses if c.ready)
    return f"{ready}/{total}"


def pod_restart_count(p: Any) -> int:
    statuses = (p.status.container_statuses or []) if p.status else []
    return sum(c.restart_count or 0 for c in statuses)


def pod_to_summary(p: Any, now: Optional[datetime] = None) -> PodSummary:
    """Convert Kubernetes pod object to a PodSummary."""
    meta = p.metadata
    containers = [c.name for c in (getattr(p.spec, 'containers', None) or [])] if p.spec else []
    return PodSummary(
        name=meta.name or '',
        namespace=meta.namespace or '',
        phase=(p.status.phase if p.status else None) or 'Unknown',
        ready=pod_ready_fraction(p),
        restarts=pod_restart_count(p),
        age=age_from_timestamp(meta.creation_timestamp, now),
        containers=containers,
        labels=dict(meta.labels or {}),
    )


def namespace_to_info(ns: Any) -> NamespaceInfo:
    """Convert Kubernetes namespace object to a NamespaceInfo."""
    meta = ns.metadata
    return NamespaceInfo(
        name=meta.name or '',
        status=(ns.status.phase if ns.status else None) or 'Active',
        creation_timestamp=meta.creation_timestamp,
        labels=dict(meta.labels or {}),
    )
