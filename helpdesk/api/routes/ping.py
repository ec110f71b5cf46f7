import asyncpg
from fastapi import APIRouter, HTTPException, Request

router = APIRouter(prefix="/ping", tags=["health"])


@router.get("", summary="Public health check")
async def ping() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/ready", summary="Database readiness check")
async def ready(request: Request) -> dict[str, str]:
    manager = getattr(request.app.state, "postgres_pool", None)
    if manager is None:
        raise HTTPException(status_code=503, detail="Database pool is not configured")
    try:
        await manager.test_connection()
    except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
        raise HTTPException(status_code=503, detail="Database is unavailable") from exc
    return {"status": "ready"}
