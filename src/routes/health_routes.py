"""
Health Check Routes

System health and status endpoints.
"""

from fastapi import APIRouter
from models.schemas import HealthResponse
from config.settings import settings


router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Health check endpoint.

    Returns the current status and version of the system.
    This endpoint can be used for monitoring and load balancer health checks.

    Returns:
        HealthResponse with status and version information
    """
    return HealthResponse(
        status="healthy",
        version=settings.APP_VERSION
    )


@router.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "description": "Audits whether AI assistants cite a website and who they cite instead",
        "endpoints": {
            "health": "/health",
            "prompt_suggestions": "/analyze/prompts",
            "citation_analysis": "/analyze/citations",
            "free_report": "/analyze/free-report",
            "trial_eligibility": "/trial/eligibility",
            "report": "/report/{analysis_id}"
        },
        "workflow": {
            "step_1": "POST /analyze/prompts - Generate prompts for a website",
            "step_2": "POST /analyze/citations - Query AI providers, validate competitors, score visibility",
            "step_3": "GET /report/{analysis_id} - Fetch the stored result"
        }
    }
