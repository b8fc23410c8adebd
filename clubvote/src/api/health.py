from fastapi import APIRouter
from sqlalchemy import text

from core.database import get_db

router = APIRouter()


@router.get("/health")
async def health():
    async with get_db() as db:
        await db.execute(text("SELECT 1"))
    return {"status": "ok"}
