from typing import Any

from sqlmodel import SQLModel


class UserIdentity(SQLModel):
    """Minimal identity kept next to the token; enough to tell own messages apart."""

    id: str
    email: str | None = None
    name: str | None = None
    role: str | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "UserIdentity":
        # /auth/me returns firstName/lastName; login returns the same user object
        name = data.get("name")
        if not name:
            name = " ".join(p for p in (data.get("firstName"), data.get("lastName")) if p) or None
        return cls(
            id=str(data["id"]),
            email=data.get("email"),
            name=name,
            role=data.get("role"),
        )
