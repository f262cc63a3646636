from fastapi import APIRouter, Depends

from app.cache import cache
from app.dependencies import require_principal
from app.errors import ValidationError
from app.permissions import Principal
from app.schemas import Envelope, envelope

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


@router.post("/logout", response_model=Envelope)
async def logout(principal: Principal = Depends(require_principal)):
    """Revoke the caller's session so the gateway-forwarded id stops working."""
    if not principal.session_id:
        raise ValidationError("No session to revoke")
    revoked = await cache.revoke(principal.session_id)
    return envelope({"revoked": revoked}, "Logged out")
