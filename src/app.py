"""
Main FastAPI Application

Unified API server with all routes organized cleanly.
"""

import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from config.settings import settings

from src.routes import health_routes, analysis_routes, trial_routes

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%H:%M:%S'
)


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="API for auditing website citations across AI assistants"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health_routes.router)
    app.include_router(analysis_routes.router)
    app.include_router(analysis_routes.report_router)
    app.include_router(trial_routes.router)

    @app.on_event("startup")
    async def startup_event():
        """Check external connections on startup."""
        logger = logging.getLogger(__name__)

        configured = [
            name for name, key in (
                ("openai", settings.OPENAI_API_KEY),
                ("anthropic", settings.ANTHROPIC_API_KEY),
                ("perplexity", settings.PERPLEXITY_API_KEY),
            ) if key
        ]
        if configured:
            logger.info(f"✅ Providers configured: {', '.join(configured)}")
        else:
            logger.warning("⚠️  No AI provider API keys configured")

        try:
            from config.database import test_connections

            status = test_connections()
            if status["redis"]["connected"]:
                logger.info("✅ Redis: Connected")
            else:
                logger.warning(f"⚠️  Redis: Not connected - {status['redis']['error']}")

        except Exception as e:
            logger.error(f"❌ Connection check error: {e}")
            logger.warning("Application will continue but caching and shared limits may not work")

    @app.on_event("shutdown")
    async def shutdown_event():
        from config.database import close_connections
        close_connections()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
