from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from nyaybooker.services.api_client import ApiClient, StaticTokenSource
from nyaybooker.services.availability_service import AvailabilityService

optional_bearer = HTTPBearer(auto_error=False)


def bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_bearer),
) -> str | None:
    if not credentials or credentials.scheme.lower() != "bearer":
        return None
    return credentials.credentials


def require_bearer_token(token: str | None = Depends(bearer_token)) -> str:
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token


def get_api_client(request: Request, token: str | None = Depends(bearer_token)) -> ApiClient:
    """Upstream client for this request: shared connection pool, caller's own token."""
    base: ApiClient = request.app.state.api
    return base.with_tokens(StaticTokenSource(token))


def get_availability_service(api: ApiClient = Depends(get_api_client)) -> AvailabilityService:
    return AvailabilityService(api)
