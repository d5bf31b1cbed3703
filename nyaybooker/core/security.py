from datetime import UTC, datetime, timedelta

from jose import JWTError, jwt

from nyaybooker.core.config import settings


def get_token_expiry(token: str) -> datetime | None:
    """Read the `exp` claim without verifying the signature (the server verifies)."""
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return None
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        return None
    return datetime.fromtimestamp(exp, UTC)


def is_token_expired(token: str | None, now: datetime | None = None) -> bool:
    """True if the token is missing, malformed, or expires within the buffer window."""
    if not token:
        return True
    expires_at = get_token_expiry(token)
    if expires_at is None:
        return True
    now = now or datetime.now(UTC)
    return expires_at < now + timedelta(seconds=settings.token_expiry_buffer_seconds)


def bearer_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
