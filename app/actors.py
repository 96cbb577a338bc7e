from dataclasses import dataclass

from app.errors import Forbidden
from app.models import Role


@dataclass(frozen=True)
class Actor:
    """Caller identity, resolved once when a request comes in."""

    id: str
    role: Role


def require_role(actor: Actor, role: Role) -> None:
    if actor.role != role:
        raise Forbidden(f"This action is only available to {role.value}s")
