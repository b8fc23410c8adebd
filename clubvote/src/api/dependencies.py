import uuid

from fastapi import Header, HTTPException

from config import settings
from services.access import Caller


async def verify_gateway_secret(
    x_gateway_secret: str = Header(...),
) -> None:
    if x_gateway_secret != settings.GATEWAY_SECRET:
        raise HTTPException(status_code=401, detail="Invalid gateway secret")


async def get_caller(x_user_id: str | None = Header(None)) -> Caller:
    """Identity resolved upstream by the auth gateway."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        return Caller(user_id=uuid.UUID(x_user_id))
    except ValueError:
        raise HTTPException(status_code=401, detail="Unauthorized")
