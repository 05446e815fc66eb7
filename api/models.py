"""
API request and response models for the Lorekeeper REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
worlds/models.py, which own the internal domain representation. Route handlers
map between the two.

Separation of concerns: domain dataclasses = domain truth; api/ models = API contract.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from auth.models import PublicUser
from worlds.models import Entity, Page, Project, ProjectStats

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Letters, digits, underscore and hyphen only.
USERNAME_PATTERN = r"^[A-Za-z0-9_-]+$"

# bcrypt only considers the first 72 bytes of a password.
PASSWORD_MAX_LENGTH = 72

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EntityTypeEnum(str, Enum):
    CHARACTER = "CHARACTER"
    ORGANIZATION = "ORGANIZATION"
    CULTURE = "CULTURE"
    SPECIES = "SPECIES"
    LOCATION = "LOCATION"
    ITEM = "ITEM"


# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    Only the username is stripped. The password is hashed exactly as sent,
    matching LoginRequest.
    """

    email: EmailStr
    username: str = Field(min_length=3, max_length=32, pattern=USERNAME_PATTERN)
    password: str = Field(min_length=8, max_length=PASSWORD_MAX_LENGTH)

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: str) -> str:
        """Reject passwords whose UTF-8 encoding exceeds bcrypt's 72-byte window."""
        if len(value.encode("utf-8")) > PASSWORD_MAX_LENGTH:
            raise ValueError(f"Password must be at most {PASSWORD_MAX_LENGTH} bytes.")
        return value


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    Passwords are not stripped: leading/trailing spaces are part of the secret.
    """

    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=PASSWORD_MAX_LENGTH)


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public user view. Never carries the password hash or any token."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    username: str
    role: str
    email_verified: bool

    @classmethod
    def from_public(cls, user: PublicUser) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            username=user.username,
            role=user.role,
            email_verified=user.email_verified,
        )


class LoginResponse(BaseModel):
    """Response for POST /api/v1/auth/login. The token is also set as an HttpOnly cookie."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str
    expires_in: int
    user: UserResponse


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


class ProjectCreate(BaseModel):
    """Request body for POST /api/v1/projects."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)


class ProjectUpdate(BaseModel):
    """Request body for PATCH /api/v1/projects/{id}. Omitted fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=5000)


class ProjectResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: Optional[str] = None
    owner_id: int
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_project(cls, project: Project) -> "ProjectResponse":
        return cls(
            id=project.id,
            name=project.name,
            description=project.description,
            owner_id=project.owner_id,
            created_at=project.created_at,
            updated_at=project.updated_at,
        )


class ProjectPage(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: list[ProjectResponse]
    total: int
    page: int
    size: int
    total_pages: int

    @classmethod
    def from_page(cls, page: Page[Project]) -> "ProjectPage":
        return cls(
            items=[ProjectResponse.from_project(p) for p in page.items],
            total=page.total,
            page=page.page,
            size=page.size,
            total_pages=page.total_pages,
        )


class ProjectStatsResponse(BaseModel):
    """Response for GET /api/v1/projects/{id}/stats. Counts cover live entities only."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: Optional[str] = None
    entity_count: int
    entity_count_by_type: dict[str, int]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_stats(cls, stats: ProjectStats) -> "ProjectStatsResponse":
        return cls(
            id=stats.project.id,
            name=stats.project.name,
            description=stats.project.description,
            entity_count=stats.entity_count,
            entity_count_by_type=stats.entity_count_by_type,
            created_at=stats.project.created_at,
            updated_at=stats.project.updated_at,
        )


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


class EntityCreate(BaseModel):
    """Request body for POST /api/v1/projects/{id}/entities."""

    model_config = ConfigDict(str_strip_whitespace=True)

    type: EntityTypeEnum
    name: str = Field(min_length=1, max_length=255)
    summary: Optional[str] = Field(default=None, max_length=1000)
    description: Optional[str] = None
    tags: list[str] = Field(default_factory=list, max_length=50)
    metadata: Optional[str] = None


class EntityUpdate(BaseModel):
    """Request body for PATCH /api/v1/entities/{id}. Omitted fields are left unchanged."""

    model_config = ConfigDict(str_strip_whitespace=True)

    type: Optional[EntityTypeEnum] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    summary: Optional[str] = Field(default=None, max_length=1000)
    description: Optional[str] = None
    tags: Optional[list[str]] = Field(default=None, max_length=50)
    metadata: Optional[str] = None


class EntityResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    project_id: int
    type: str
    name: str
    summary: Optional[str] = None
    description: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    metadata: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, entity: Entity) -> "EntityResponse":
        return cls(
            id=entity.id,
            project_id=entity.project_id,
            type=entity.type.value,
            name=entity.name,
            summary=entity.summary,
            description=entity.description,
            tags=list(entity.tags),
            metadata=entity.metadata,
            created_at=entity.created_at,
            updated_at=entity.updated_at,
        )


class EntityPage(BaseModel):
    model_config = ConfigDict(frozen=True)

    items: list[EntityResponse]
    total: int
    page: int
    size: int
    total_pages: int

    @classmethod
    def from_page(cls, page: Page[Entity]) -> "EntityPage":
        return cls(
            items=[EntityResponse.from_entity(e) for e in page.items],
            total=page.total,
            page=page.page,
            size=page.size,
            total_pages=page.total_pages,
        )


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    database: str = "ok"
