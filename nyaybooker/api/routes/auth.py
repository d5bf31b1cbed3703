from fastapi import APIRouter, Depends

from nyaybooker.api.deps import get_api_client, require_bearer_token
from nyaybooker.models.user import UserIdentity
from nyaybooker.services.api_client import ApiClient

router = APIRouter(prefix="/auth", tags=["auth"])


@router.get("/me", response_model=UserIdentity, dependencies=[Depends(require_bearer_token)])
async def me(api: ApiClient = Depends(get_api_client)) -> UserIdentity:
    return await api.get_me()
