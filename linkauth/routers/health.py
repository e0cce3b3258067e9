from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from linkauth.database import check_connection

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> JSONResponse:
    database_ok = check_connection()
    return JSONResponse(
        status_code=200 if database_ok else 503,
        content={
            "status": "healthy" if database_ok else "degraded",
            "database": "up" if database_ok else "down",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )
