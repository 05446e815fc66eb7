"""
worlds/models.py -- Domain dataclasses for projects and their entities.

Pure data containers. The only logic is is_deleted(), which the ownership
guard relies on. All business rules (ownership, soft-delete visibility,
delete refusal) live in worlds/service.py.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class EntityType(str, Enum):
    CHARACTER = "CHARACTER"
    ORGANIZATION = "ORGANIZATION"
    CULTURE = "CULTURE"
    SPECIES = "SPECIES"
    LOCATION = "LOCATION"
    ITEM = "ITEM"


@dataclass
class Project:
    """A worldbuilding project, owned by exactly one user.

    id is None before the record is written to the database.
    """

    owner_id: int
    name: str
    description: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass
class Entity:
    """A character, place, item... inside a project.

    Ownership is inherited: owner_id is the owning project's owner, filled in
    by the store from a join so the guard can check it without a second query.
    metadata is free-form JSON text supplied by the client and stored verbatim.
    """

    project_id: int
    type: EntityType
    name: str
    summary: Optional[str] = None
    description: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    metadata: Optional[str] = None
    id: Optional[int] = None
    owner_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass(frozen=True)
class ProjectStats:
    project: Project
    entity_count: int
    entity_count_by_type: dict[str, int]


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of results. page is zero-based."""

    items: list[T]
    total: int
    page: int
    size: int

    @property
    def total_pages(self) -> int:
        if self.size <= 0:
            return 0
        return (self.total + self.size - 1) // self.size
