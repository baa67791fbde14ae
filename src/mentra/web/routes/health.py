"""Health check endpoint."""

from fastapi import APIRouter

from mentra import __version__
from mentra.db.database import get_db_path, is_initialized
from mentra.utils.timeutil import utc_now_iso
from mentra.web.schemas import HealthResponse

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check API health status."""
    return HealthResponse(
        status="ok",
        version=__version__,
        timestamp=utc_now_iso(),
        database=str(get_db_path()) if is_initialized() else "uninitialized",
    )
