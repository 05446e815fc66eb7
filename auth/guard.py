"""
auth/guard.py -- Ownership guard for owned resources (projects, entities).

Every read or write on an owned resource passes through guard() before the
service touches it. The order of the two checks is fixed:

  1. not-found   -- the resource does not exist, or is soft-deleted.
                    Raises ResourceNotFoundError. A soft-deleted resource is
                    reported as not found even to its owner.
  2. ownership   -- the caller is not the owner. Logs a warning and raises
                    AccessDeniedError.

Running the not-found check first means a caller can learn that a foreign
resource exists (403) but can never learn anything about one that was
deleted (404).

The guard is pure: it reads the loaded resource and the caller's identity and
never touches the database.

Layer rule: no imports from api/, worlds/, or notify/. Resources are passed
in duck-typed; anything with an is_deleted() method qualifies.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Optional, Protocol, TypeVar

from core.errors import AccessDeniedError, ResourceNotFoundError
from core.logutil import log_event

logger = logging.getLogger("lorekeeper.auth.guard")


class SoftDeletable(Protocol):
    def is_deleted(self) -> bool: ...


R = TypeVar("R", bound=SoftDeletable)


def ensure_visible(resource: Optional[R], kind: str, resource_id: int) -> R:
    """Return the resource, or raise ResourceNotFoundError if it is absent or soft-deleted."""
    if resource is None or resource.is_deleted():
        raise ResourceNotFoundError(kind, resource_id)
    return resource


def authorize(resource: R, caller_id: int, owner_id_of: Callable[[R], int], kind: str, resource_id: int) -> R:
    """Return the resource if caller_id owns it, else log and raise AccessDeniedError."""
    owner_id = owner_id_of(resource)
    if owner_id != caller_id:
        log_event(
            logger,
            logging.WARNING,
            f"Access denied to {kind}",
            resource_id=resource_id,
            owner_id=owner_id,
            caller_id=caller_id,
        )
        raise AccessDeniedError(kind, resource_id)
    return resource


def guard(
    resource: Optional[R],
    caller_id: int,
    owner_id_of: Callable[[R], int],
    kind: str,
    resource_id: int,
) -> R:
    """Not-found check, then ownership check. Returns the resource when both pass.

    Usage:
        project = guard(store.get_project(pid), principal.user_id,
                        lambda p: p.owner_id, "project", pid)
    """
    return authorize(ensure_visible(resource, kind, resource_id), caller_id, owner_id_of, kind, resource_id)
