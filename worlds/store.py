"""
worlds/store.py -- SQLAlchemy Core persistence layer for projects and entities.

Pattern: Repository + Data Mapper. WorldStore is the repository; the
_row_to_* functions map rows to the dataclasses in worlds/models.py.

Soft delete:
  get_project() and get_entity() return soft-deleted rows too, marked via
  deleted_at, so the ownership guard can report them as not found. Listing,
  counting and search only ever see live rows. An entity whose project is
  soft-deleted is mapped with the project's deleted_at, which makes it
  invisible through every path.

Tags are a JSON array serialized as text. Tag filtering happens in Python
after the SQL filters, since the column is opaque to the database.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = WorldStore(db)
    project_id = store.create_project(Project(owner_id=1, name="Eldoria"))
    page = store.list_projects(owner_id=1, page=0, size=20)
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    func,
    or_,
    select,
)

from core.db import Database, as_utc, metadata, now_utc
from worlds.models import Entity, EntityType, Page, Project

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_projects = Table(
    "projects",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("owner_id", Integer, ForeignKey("users.id"), nullable=False, index=True),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("deleted_at", DateTime(timezone=True)),
)

_entities = Table(
    "entities",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", Integer, ForeignKey("projects.id"), nullable=False, index=True),
    Column("type", String(32), nullable=False),
    Column("name", String(255), nullable=False),
    Column("summary", Text),
    Column("description", Text),
    Column("tags", Text),  # JSON array serialized as text
    Column("metadata", Text),  # client JSON, stored verbatim
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("deleted_at", DateTime(timezone=True)),
)

_live_projects = _projects.c.deleted_at.is_(None)
_live_entities = _entities.c.deleted_at.is_(None)

# Entity columns plus the owning project's owner and deletion state.
_entity_view = select(
    _entities,
    _projects.c.owner_id.label("owner_id"),
    _projects.c.deleted_at.label("project_deleted_at"),
).select_from(_entities.join(_projects, _entities.c.project_id == _projects.c.id))


class WorldStore:
    """Repository for Project and Entity records."""

    def __init__(self, db: Database) -> None:
        self.db = db
        metadata.create_all(db.engine)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def create_project(self, project: Project) -> int:
        now = now_utc()
        with self.db.connect() as conn:
            result = conn.execute(
                _projects.insert().values(
                    owner_id=project.owner_id,
                    name=project.name,
                    description=project.description,
                    created_at=project.created_at or now,
                    updated_at=project.updated_at or now,
                )
            )
            return result.inserted_primary_key[0]

    def get_project(self, project_id: int) -> Optional[Project]:
        """Return the project, soft-deleted or not. None if the id was never used."""
        with self.db.connect() as conn:
            row = conn.execute(_projects.select().where(_projects.c.id == project_id)).fetchone()
        return _row_to_project(row) if row is not None else None

    def list_projects(self, owner_id: int, page: int = 0, size: int = 20) -> Page[Project]:
        """Return the owner's live projects, newest first."""
        where = (_projects.c.owner_id == owner_id) & _live_projects
        with self.db.connect() as conn:
            total = conn.execute(select(func.count()).select_from(_projects).where(where)).scalar() or 0
            rows = conn.execute(
                _projects.select()
                .where(where)
                .order_by(_projects.c.created_at.desc(), _projects.c.id.desc())
                .limit(size)
                .offset(page * size)
            ).fetchall()
        return Page(items=[_row_to_project(r) for r in rows], total=total, page=page, size=size)

    def update_project(self, project: Project) -> Project:
        """Persist name/description and bump updated_at. Returns the stored project."""
        project.updated_at = now_utc()
        with self.db.connect() as conn:
            conn.execute(
                _projects.update()
                .where(_projects.c.id == project.id)
                .values(name=project.name, description=project.description, updated_at=project.updated_at)
            )
        return project

    def soft_delete_project(self, project_id: int, when: Optional[datetime] = None) -> bool:
        with self.db.connect() as conn:
            result = conn.execute(
                _projects.update()
                .where((_projects.c.id == project_id) & _live_projects)
                .values(deleted_at=when or now_utc())
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Entity counts
    # ------------------------------------------------------------------

    def count_entities(self, project_id: int) -> int:
        """Number of live entities in the project."""
        with self.db.connect() as conn:
            count = conn.execute(
                select(func.count())
                .select_from(_entities)
                .where((_entities.c.project_id == project_id) & _live_entities)
            ).scalar()
        return count or 0

    def count_entities_by_type(self, project_id: int) -> dict[str, int]:
        """Live entity count per type. Types with no entities are absent."""
        with self.db.connect() as conn:
            rows = conn.execute(
                select(_entities.c.type, func.count())
                .where((_entities.c.project_id == project_id) & _live_entities)
                .group_by(_entities.c.type)
            ).fetchall()
        return {entity_type: count for entity_type, count in rows}

    # ------------------------------------------------------------------
    # Entities
    # ------------------------------------------------------------------

    def create_entity(self, entity: Entity) -> int:
        now = now_utc()
        with self.db.connect() as conn:
            result = conn.execute(
                _entities.insert().values(
                    project_id=entity.project_id,
                    type=entity.type.value,
                    name=entity.name,
                    summary=entity.summary,
                    description=entity.description,
                    tags=json.dumps(entity.tags),
                    metadata=entity.metadata,
                    created_at=entity.created_at or now,
                    updated_at=entity.updated_at or now,
                )
            )
            return result.inserted_primary_key[0]

    def get_entity(self, entity_id: int) -> Optional[Entity]:
        """Return the entity with its project's owner_id. Deleted rows are included, marked."""
        with self.db.connect() as conn:
            row = conn.execute(_entity_view.where(_entities.c.id == entity_id)).fetchone()
        return _row_to_entity(row) if row is not None else None

    def update_entity(self, entity: Entity) -> Entity:
        entity.updated_at = now_utc()
        with self.db.connect() as conn:
            conn.execute(
                _entities.update()
                .where(_entities.c.id == entity.id)
                .values(
                    type=entity.type.value,
                    name=entity.name,
                    summary=entity.summary,
                    description=entity.description,
                    tags=json.dumps(entity.tags),
                    metadata=entity.metadata,
                    updated_at=entity.updated_at,
                )
            )
        return entity

    def soft_delete_entity(self, entity_id: int, when: Optional[datetime] = None) -> bool:
        with self.db.connect() as conn:
            result = conn.execute(
                _entities.update()
                .where((_entities.c.id == entity_id) & _live_entities)
                .values(deleted_at=when or now_utc())
            )
        return result.rowcount > 0

    def search_entities(
        self,
        project_id: int,
        entity_type: Optional[EntityType] = None,
        tags: Optional[list[str]] = None,
        search: Optional[str] = None,
        page: int = 0,
        size: int = 20,
    ) -> Page[Entity]:
        """Filter the project's live entities, newest first.

        entity_type: exact match.
        tags:        any-of match against the entity's tags.
        search:      case-insensitive substring of name, summary, or description.
        """
        query = _entity_view.where((_entities.c.project_id == project_id) & _live_entities)
        if entity_type is not None:
            query = query.where(_entities.c.type == entity_type.value)
        if search:
            needle = f"%{_escape_like(search.lower())}%"
            query = query.where(
                or_(
                    func.lower(_entities.c.name).like(needle, escape="\\"),
                    func.lower(func.coalesce(_entities.c.summary, "")).like(needle, escape="\\"),
                    func.lower(func.coalesce(_entities.c.description, "")).like(needle, escape="\\"),
                )
            )
        query = query.order_by(_entities.c.created_at.desc(), _entities.c.id.desc())

        with self.db.connect() as conn:
            rows = conn.execute(query).fetchall()
        found = [_row_to_entity(r) for r in rows]

        if tags:
            wanted = set(tags)
            found = [e for e in found if wanted.intersection(e.tags)]

        start = page * size
        return Page(items=found[start : start + size], total=len(found), page=page, size=size)


def _escape_like(value: str) -> str:
    """Make %, _ and the escape character literal inside a LIKE pattern."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_project(row) -> Project:
    return Project(
        id=row.id,
        owner_id=row.owner_id,
        name=row.name,
        description=row.description,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        deleted_at=as_utc(row.deleted_at),
    )


def _row_to_entity(row) -> Entity:
    tags: list[str] = json.loads(row.tags) if row.tags else []
    return Entity(
        id=row.id,
        project_id=row.project_id,
        owner_id=row.owner_id,
        type=EntityType(row.type),
        name=row.name,
        summary=row.summary,
        description=row.description,
        tags=tags,
        metadata=row._mapping["metadata"],
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        deleted_at=as_utc(row.deleted_at or row.project_deleted_at),
    )
