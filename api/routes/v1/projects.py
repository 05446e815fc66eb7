"""
api/routes/v1/projects.py -- Project CRUD, stats, and entity search/create under a project.

Routes:
  GET    /api/v1/projects                    -- caller's projects, paged, newest first
  POST   /api/v1/projects                    -- create; 201
  GET    /api/v1/projects/{id}               -- fetch one
  PATCH  /api/v1/projects/{id}               -- partial update
  DELETE /api/v1/projects/{id}               -- soft delete; 409 while entities remain
  GET    /api/v1/projects/{id}/stats         -- live entity counts
  GET    /api/v1/projects/{id}/entities      -- search entities in the project
  POST   /api/v1/projects/{id}/entities      -- create an entity; 201

Every route requires a session. Ownership and soft-delete visibility are
enforced by the services through auth.guard, never here.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from api.models import (
    EntityCreate,
    EntityPage,
    EntityResponse,
    EntityTypeEnum,
    ProjectCreate,
    ProjectPage,
    ProjectResponse,
    ProjectStatsResponse,
    ProjectUpdate,
)
from auth.dependencies import get_current_principal
from auth.models import Principal
from worlds.models import EntityType
from worlds.service import EntityService, ProjectService

router = APIRouter()


def _projects(request: Request) -> ProjectService:
    return request.app.state.project_service


def _entities(request: Request) -> EntityService:
    return request.app.state.entity_service


@router.get("/projects", response_model=ProjectPage)
def list_projects(
    page: int = Query(default=0, ge=0),
    size: int = Query(default=20, ge=1, le=100),
    principal: Principal = Depends(get_current_principal),
    service: ProjectService = Depends(_projects),
) -> ProjectPage:
    return ProjectPage.from_page(service.list_projects(principal, page=page, size=size))


@router.post("/projects", response_model=ProjectResponse, status_code=201)
def create_project(
    body: ProjectCreate,
    principal: Principal = Depends(get_current_principal),
    service: ProjectService = Depends(_projects),
) -> ProjectResponse:
    return ProjectResponse.from_project(service.create_project(principal, body.name, body.description))


@router.get("/projects/{project_id}", response_model=ProjectResponse)
def get_project(
    project_id: int,
    principal: Principal = Depends(get_current_principal),
    service: ProjectService = Depends(_projects),
) -> ProjectResponse:
    return ProjectResponse.from_project(service.get_project(principal, project_id))


@router.patch("/projects/{project_id}", response_model=ProjectResponse)
def update_project(
    project_id: int,
    body: ProjectUpdate,
    principal: Principal = Depends(get_current_principal),
    service: ProjectService = Depends(_projects),
) -> ProjectResponse:
    project = service.update_project(principal, project_id, name=body.name, description=body.description)
    return ProjectResponse.from_project(project)


@router.delete("/projects/{project_id}", status_code=204)
def delete_project(
    project_id: int,
    principal: Principal = Depends(get_current_principal),
    service: ProjectService = Depends(_projects),
) -> Response:
    service.delete_project(principal, project_id)
    return Response(status_code=204)


@router.get("/projects/{project_id}/stats", response_model=ProjectStatsResponse)
def project_stats(
    project_id: int,
    principal: Principal = Depends(get_current_principal),
    service: ProjectService = Depends(_projects),
) -> ProjectStatsResponse:
    return ProjectStatsResponse.from_stats(service.get_project_stats(principal, project_id))


@router.get("/projects/{project_id}/entities", response_model=EntityPage)
def search_entities(
    project_id: int,
    type: Optional[EntityTypeEnum] = Query(default=None),  # noqa: A002 -- public query parameter name
    tags: Optional[list[str]] = Query(default=None),
    search: Optional[str] = Query(default=None, max_length=255),
    page: int = Query(default=0, ge=0),
    size: int = Query(default=20, ge=1, le=100),
    principal: Principal = Depends(get_current_principal),
    service: EntityService = Depends(_entities),
) -> EntityPage:
    """Filter by type, any-of tags (repeat ?tags=), and a case-insensitive text search."""
    result = service.search_entities(
        principal,
        project_id,
        entity_type=EntityType(type.value) if type else None,
        tags=tags,
        search=search or None,
        page=page,
        size=size,
    )
    return EntityPage.from_page(result)


@router.post("/projects/{project_id}/entities", response_model=EntityResponse, status_code=201)
def create_entity(
    project_id: int,
    body: EntityCreate,
    principal: Principal = Depends(get_current_principal),
    service: EntityService = Depends(_entities),
) -> EntityResponse:
    entity = service.create_entity(
        principal,
        project_id,
        EntityType(body.type.value),
        body.name,
        summary=body.summary,
        description=body.description,
        tags=body.tags,
        metadata=body.metadata,
    )
    return EntityResponse.from_entity(entity)
