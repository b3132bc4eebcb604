from fastapi import APIRouter
from sqlalchemy import text

from app.core.db import AsyncSessionLocal

router = APIRouter()


@router.get("/")
async def health():
    return {"status": "ok", "message": "GST Practice Running"}


@router.get("/health/db")
async def health_db():
    async with AsyncSessionLocal() as session:
        await session.execute(text("SELECT 1"))
    return {"status": "ok", "database": "reachable"}
