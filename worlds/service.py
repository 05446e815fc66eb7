"""
worlds/service.py -- ProjectService and EntityService.

Every operation takes the caller's Principal explicitly and passes the loaded
resource through auth.guard.guard() before reading or changing it:

    not found / soft-deleted  -> ResourceNotFoundError (even for the owner)
    owned by someone else     -> AccessDeniedError

An entity's owner is its project's owner; creating or searching entities
guards the project first.

Layer rule: imports core/, auth/ (guard and models only), and worlds/.
No imports from api/ or notify/.
"""

from __future__ import annotations

import logging
from typing import Optional

from auth.guard import guard
from auth.models import Principal
from core.errors import ProjectHasEntitiesError
from core.logutil import log_event, measure_time
from worlds.models import Entity, EntityType, Page, Project, ProjectStats
from worlds.store import WorldStore

logger = logging.getLogger("lorekeeper.worlds")

PROJECT = "project"
ENTITY = "entity"


def _owner_of(resource) -> int:
    return resource.owner_id


class ProjectService:
    def __init__(self, store: WorldStore) -> None:
        self.store = store

    def _load(self, principal: Principal, project_id: int) -> Project:
        return guard(self.store.get_project(project_id), principal.user_id, _owner_of, PROJECT, project_id)

    def list_projects(self, principal: Principal, page: int = 0, size: int = 20) -> Page[Project]:
        """The caller's live projects, newest first. Nobody else's ever appear."""
        log_event(logger, logging.DEBUG, "Listing projects", user_id=principal.user_id, page=page, size=size)
        return self.store.list_projects(principal.user_id, page=page, size=size)

    def get_project(self, principal: Principal, project_id: int) -> Project:
        return self._load(principal, project_id)

    def create_project(self, principal: Principal, name: str, description: Optional[str] = None) -> Project:
        project_id = self.store.create_project(Project(owner_id=principal.user_id, name=name, description=description))
        log_event(logger, logging.INFO, "Project created", project_id=project_id, user_id=principal.user_id)
        return self.store.get_project(project_id)

    def update_project(
        self,
        principal: Principal,
        project_id: int,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Project:
        """Partial update: fields left as None keep their current value."""
        project = self._load(principal, project_id)
        if name is not None:
            project.name = name
        if description is not None:
            project.description = description
        self.store.update_project(project)
        log_event(logger, logging.INFO, "Project updated", project_id=project_id, user_id=principal.user_id)
        return project

    def get_project_stats(self, principal: Principal, project_id: int) -> ProjectStats:
        """Live entity count, total and per type."""
        project = self._load(principal, project_id)
        with measure_time(logger, "Calculate project stats"):
            total = self.store.count_entities(project_id)
            by_type = self.store.count_entities_by_type(project_id)
        return ProjectStats(project=project, entity_count=total, entity_count_by_type=by_type)

    def delete_project(self, principal: Principal, project_id: int) -> None:
        """Soft-delete the project. Refused while it still has live entities."""
        with self.store.db.transaction():
            self._load(principal, project_id)
            count = self.store.count_entities(project_id)
            if count > 0:
                log_event(
                    logger,
                    logging.WARNING,
                    "Cannot delete project with entities",
                    project_id=project_id,
                    entity_count=count,
                )
                raise ProjectHasEntitiesError(project_id, count)
            self.store.soft_delete_project(project_id)
        log_event(logger, logging.INFO, "Project deleted", project_id=project_id, user_id=principal.user_id)


class EntityService:
    def __init__(self, store: WorldStore) -> None:
        self.store = store

    def _load(self, principal: Principal, entity_id: int) -> Entity:
        return guard(self.store.get_entity(entity_id), principal.user_id, _owner_of, ENTITY, entity_id)

    def _load_project(self, principal: Principal, project_id: int) -> Project:
        return guard(self.store.get_project(project_id), principal.user_id, _owner_of, PROJECT, project_id)

    def create_entity(
        self,
        principal: Principal,
        project_id: int,
        entity_type: EntityType,
        name: str,
        summary: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[list[str]] = None,
        metadata: Optional[str] = None,
    ) -> Entity:
        self._load_project(principal, project_id)
        entity_id = self.store.create_entity(
            Entity(
                project_id=project_id,
                type=entity_type,
                name=name,
                summary=summary,
                description=description,
                tags=list(tags or []),
                metadata=metadata,
            )
        )
        log_event(
            logger,
            logging.INFO,
            "Entity created",
            entity_id=entity_id,
            project_id=project_id,
            type=entity_type.value,
        )
        return self.store.get_entity(entity_id)

    def get_entity(self, principal: Principal, entity_id: int) -> Entity:
        return self._load(principal, entity_id)

    def update_entity(
        self,
        principal: Principal,
        entity_id: int,
        entity_type: Optional[EntityType] = None,
        name: Optional[str] = None,
        summary: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[list[str]] = None,
        metadata: Optional[str] = None,
    ) -> Entity:
        """Partial update: fields left as None keep their current value."""
        entity = self._load(principal, entity_id)
        if entity_type is not None:
            entity.type = entity_type
        if name is not None:
            entity.name = name
        if summary is not None:
            entity.summary = summary
        if description is not None:
            entity.description = description
        if tags is not None:
            entity.tags = list(tags)
        if metadata is not None:
            entity.metadata = metadata
        self.store.update_entity(entity)
        log_event(logger, logging.INFO, "Entity updated", entity_id=entity_id, user_id=principal.user_id)
        return entity

    def delete_entity(self, principal: Principal, entity_id: int) -> None:
        self._load(principal, entity_id)
        self.store.soft_delete_entity(entity_id)
        log_event(logger, logging.INFO, "Entity deleted", entity_id=entity_id, user_id=principal.user_id)

    def search_entities(
        self,
        principal: Principal,
        project_id: int,
        entity_type: Optional[EntityType] = None,
        tags: Optional[list[str]] = None,
        search: Optional[str] = None,
        page: int = 0,
        size: int = 20,
    ) -> Page[Entity]:
        self._load_project(principal, project_id)
        with measure_time(logger, "Search entities"):
            result = self.store.search_entities(
                project_id, entity_type=entity_type, tags=tags, search=search, page=page, size=size
            )
        log_event(
            logger,
            logging.DEBUG,
            "Entity search completed",
            project_id=project_id,
            total_results=result.total,
            page_results=len(result.items),
        )
        return result
