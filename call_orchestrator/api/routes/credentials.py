"""
Credential verification route
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from call_orchestrator.api.middleware.auth import require_api_key
from call_orchestrator.models.call import ProviderPath
from call_orchestrator.services.call_manager import CallManager, get_call_manager

router = APIRouter(prefix="/credentials", tags=["credentials"], dependencies=[Depends(require_api_key)])


class VerifyCredentialsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId")
    provider_path: ProviderPath = Field(default=ProviderPath.TELEPHONY, alias="providerPath")


@router.post("/verify")
async def verify_credentials(
    request: VerifyCredentialsRequest,
    manager: CallManager = Depends(get_call_manager)
):
    """
    Check the user's stored provider credentials against the providers
    """
    return await manager.verify_credentials(request.user_id, request.provider_path)
