"""
SideBy Insights Engine - Main Application

FastAPI server for two-group comparison insights.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import get_settings
from api.dependencies import get_dataset_store
from api.routes import insights
from core.logging_config import api_logger as logger
from llm.chat_client import chat_client


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()

    # Startup
    logger.info(f"🚀 {settings.app_name} v{settings.app_version} starting...")
    loaded = get_dataset_store().load_directory(settings.datasets_dir)
    logger.info(f"📁 {loaded} datasets from {settings.datasets_dir}")
    if settings.llm.enabled:
        logger.info(f"🤖 LLM model: {settings.llm.model} at {settings.llm.base_url}")
    else:
        logger.info("🤖 AI insights disabled, rule engine only")

    yield

    # Shutdown
    await chat_client.close()
    logger.info("👋 Shutting down...")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Insight generation for two-group dataset comparisons, with AI generation and statistical fallback",
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(insights.router, prefix="/api/v1", tags=["Insights"])

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "app": settings.app_name,
            "version": settings.app_version,
            "ai_enabled": settings.llm.enabled,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
