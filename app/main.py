from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app import models  # noqa: F401  registers tables on SQLModel.metadata
from app.cache.layer import cache_layer
from app.core.config import get_settings
from app.core.errors import NotAuthenticatedError
from app.core.logging import setup_logging
from app.database import create_db_and_tables
from app.integrations.google_calendar import google_calendar
from app.routers import comments, invites, notifications, projects, subtasks, tags, tasks, teams


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(get_settings().log_level)
    await create_db_and_tables()
    await cache_layer.init_cache()
    await google_calendar.start()
    yield
    await google_calendar.stop()
    await cache_layer.close()


app = FastAPI(
    title="Task Board API",
    description="Team projects, kanban sections and tasks with a Redis read cache",
    swagger_ui_parameters={"displayRequestDuration": True},
    version="1.0.0",
    lifespan=lifespan,
)


@app.exception_handler(NotAuthenticatedError)
async def not_authenticated_handler(request: Request, exc: NotAuthenticatedError):
    return JSONResponse(status_code=status.HTTP_401_UNAUTHORIZED, content={"detail": exc.message})


# Include routers
app.include_router(tasks.router)
app.include_router(projects.router)
app.include_router(teams.router)
app.include_router(notifications.router)
app.include_router(invites.router)
app.include_router(subtasks.router)
app.include_router(comments.router)
app.include_router(tags.router)


@app.get("/")
async def root():
    return {
        "message": "Welcome to Task Board API",
        "docs": "/docs",
        "version": "1.0.0",
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "cache": cache_layer.get_stats()}


def run() -> None:
    """Serve the app with uvicorn; ``taskboard-api`` on the command line."""
    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.server_reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
