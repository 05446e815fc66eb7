"""
api/routes/v1/entities.py -- Single-entity endpoints.

Routes:
  GET    /api/v1/entities/{id}  -- fetch one
  PATCH  /api/v1/entities/{id}  -- partial update
  DELETE /api/v1/entities/{id}  -- soft delete; 204

Creating and searching live under /api/v1/projects/{id}/entities.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import EntityResponse, EntityUpdate
from auth.dependencies import get_current_principal
from auth.models import Principal
from worlds.models import EntityType
from worlds.service import EntityService

router = APIRouter()


def _entities(request: Request) -> EntityService:
    return request.app.state.entity_service


@router.get("/entities/{entity_id}", response_model=EntityResponse)
def get_entity(
    entity_id: int,
    principal: Principal = Depends(get_current_principal),
    service: EntityService = Depends(_entities),
) -> EntityResponse:
    return EntityResponse.from_entity(service.get_entity(principal, entity_id))


@router.patch("/entities/{entity_id}", response_model=EntityResponse)
def update_entity(
    entity_id: int,
    body: EntityUpdate,
    principal: Principal = Depends(get_current_principal),
    service: EntityService = Depends(_entities),
) -> EntityResponse:
    entity = service.update_entity(
        principal,
        entity_id,
        entity_type=EntityType(body.type.value) if body.type else None,
        name=body.name,
        summary=body.summary,
        description=body.description,
        tags=body.tags,
        metadata=body.metadata,
    )
    return EntityResponse.from_entity(entity)


@router.delete("/entities/{entity_id}", status_code=204)
def delete_entity(
    entity_id: int,
    principal: Principal = Depends(get_current_principal),
    service: EntityService = Depends(_entities),
) -> Response:
    service.delete_entity(principal, entity_id)
    return Response(status_code=204)
