"""FastAPI dependencies shared by the routes."""

from fastapi import Header, HTTPException, Request

from rencam.service import BookingService

ACTOR_ID_HEADER = "X-Actor-Id"


def get_service(request: Request) -> BookingService:
    """The BookingService bound to this app (see factory.create_app)."""
    return request.app.state.service


def require_actor(x_actor_id: str | None = Header(None, alias=ACTOR_ID_HEADER)) -> str:
    """Acting user id, set by the authentication layer in front of the engine."""
    if not x_actor_id or not x_actor_id.strip():
        raise HTTPException(status_code=401, detail="Missing actor")
    return x_actor_id.strip()
