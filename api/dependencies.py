"""
Request dependencies shared by the routers.
"""

from typing import Optional
from uuid import UUID

from fastapi import Header, HTTPException, Request

from services.engine import SalesEngine
from services.messages import resolve_language


def get_engine(request: Request) -> SalesEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Service is starting")
    return engine


def get_actor_id(x_actor_id: Optional[str] = Header(default=None)) -> Optional[UUID]:
    """Acting user id, trusted from the X-Actor-Id header set by the auth layer."""
    if not x_actor_id:
        return None
    try:
        return UUID(x_actor_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid X-Actor-Id header") from None


def get_language(accept_language: Optional[str] = Header(default=None)) -> str:
    return resolve_language(accept_language)
