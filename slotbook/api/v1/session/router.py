from fastapi import APIRouter, Depends

from slotbook.core.security import Identity, get_current_identity

router = APIRouter(prefix="/session", tags=["Session"])


@router.get("", response_model=Identity)
async def get_session(
    identity: Identity = Depends(get_current_identity)
):
    """Identity check: returns the caller's identity or 401."""
    return identity
