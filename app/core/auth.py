from dataclasses import dataclass

from fastapi import Header

from app.core.errors import NotAuthenticatedError


@dataclass(frozen=True)
class Actor:
    """The user on whose behalf a request runs."""

    id: str
    name: str = "Unknown"


def require_actor(actor: Actor | None) -> Actor:
    if actor is None or not actor.id:
        raise NotAuthenticatedError()
    return actor


# Sessions are resolved upstream; the gateway forwards the user identity.
async def get_actor(
    x_user_id: str | None = Header(default=None),
    x_user_name: str | None = Header(default=None),
) -> Actor | None:
    if not x_user_id:
        return None
    return Actor(id=x_user_id, name=x_user_name or "Unknown")
