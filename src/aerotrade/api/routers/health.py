"""Health check endpoints."""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "aerotrade"}


@router.get("/health/detailed")
async def detailed_health(request: Request):
    """Detailed health check with redacted configuration."""
    settings = request.app.state.settings
    return {
        "status": "healthy",
        "service": "aerotrade",
        "config": settings.get_safe_dict(),
    }
