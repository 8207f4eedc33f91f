# leadengine/entrypoints/api/deps.py
from __future__ import annotations

from fastapi import Header, HTTPException

from ...config import settings
from ...domain.errors import (
    AssignmentNotFound,
    LeadEngineError,
    LeadNotFound,
    NoAgentsAvailable,
    NoLeadsAvailable,
    ValidationError,
)
from ...service_layer.unit_of_work import SqlAlchemyUnitOfWork


def require_api_key(x_api_key: str | None = Header(default=None, alias="X-API-Key")) -> None:
    if settings.API_KEY:
        if not x_api_key or x_api_key != settings.API_KEY:
            raise HTTPException(status_code=401, detail="Invalid API key")


def get_uow() -> SqlAlchemyUnitOfWork:
    """FastAPI dependency; tests override it to point at their own engine."""
    return SqlAlchemyUnitOfWork()


def http_error(e: LeadEngineError) -> HTTPException:
    if isinstance(e, ValidationError):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, (LeadNotFound, AssignmentNotFound)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (NoAgentsAvailable, NoLeadsAvailable)):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))
