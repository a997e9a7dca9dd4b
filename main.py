"""Main FastAPI application for the live vision analyzer.

Supervises the local model server and dispatches frame analysis requests to
the local and cloud providers.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from livevision.api.routers import (
    analysis,
    dispatch_logs as dispatch_logs_router,
    history,
    server,
    settings,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


async def bootstrap_local_server():
    """
    Background task that starts the local server, pulls and warms the model.

    Failures are logged; analysis requests against the local provider then
    come back with a not-ready error until the server is started manually.
    """
    logger = logging.getLogger(__name__)

    from livevision.db.settings import get_setting
    from livevision.supervisor import get_supervisor

    model = get_setting("vision_model", "llava:7b")
    keep_alive = get_setting("preload_keep_alive", "10m")

    try:
        status = await get_supervisor().bootstrap(model, keep_alive=keep_alive)
        logger.info(f"Local server bootstrap finished: {status.to_dict()}")
    except asyncio.CancelledError:
        logger.info("Local server bootstrap cancelled")
        raise
    except Exception as e:
        logger.error(f"Local server bootstrap failed: {e}", exc_info=True)


async def periodic_server_status():
    """Background task that logs when the spawned local server exits unexpectedly."""
    logger = logging.getLogger(__name__)

    from livevision.supervisor import ServerState, get_supervisor

    while True:
        try:
            await asyncio.sleep(30)
            if get_supervisor().state == ServerState.EXITED:
                logger.warning("Local server process has exited; POST /api/server/start to restart it")
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error(f"Unexpected error in periodic server status: {e}", exc_info=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan events (startup and shutdown)."""
    logger = logging.getLogger(__name__)

    tasks: list[asyncio.Task] = []

    try:
        # Startup
        logger.info("Starting up application...")

        # Initialize database schema (settings, dispatch_logs; history is lazy)
        from livevision.db.settings import init_settings_table, get_setting_bool
        from livevision.db.dispatch_logs import ensure_table
        init_settings_table()
        ensure_table()

        if get_setting_bool("auto_start_local_server", True):
            tasks.append(asyncio.create_task(bootstrap_local_server()))
        else:
            logger.info("Automatic local server start disabled")

        tasks.append(asyncio.create_task(periodic_server_status()))

        logger.info("Startup complete")

        yield  # Application runs here

    finally:
        # Shutdown
        logger.info("Shutting down application...")

        for task in tasks:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        try:
            from livevision.supervisor import get_supervisor
            await get_supervisor().stop()
        except Exception as e:
            logger.warning(f"Error stopping local server: {e}")

        logger.info("Shutdown complete")


# Create FastAPI app with lifespan handler
app = FastAPI(
    title="Live Vision Analyzer API",
    description="Local and cloud vision model dispatch for live frame analysis",
    version="0.1.0",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)


# Include routers
app.include_router(server.router)
app.include_router(analysis.router)
app.include_router(history.router)
app.include_router(dispatch_logs_router.router)
app.include_router(settings.router)


@app.get("/api")
async def root():
    """Root API endpoint with service information."""
    return {
        "name": "Live Vision Analyzer API",
        "version": "0.1.0",
        "status": "running",
        "endpoints": {
            "server": "/api/server/status",
            "providers": "/api/providers",
            "analyze": "/api/analyze",
            "caption": "/api/caption",
            "detect": "/api/detect",
            "point": "/api/point",
            "scene": "/api/scene",
            "compare": "/api/compare",
            "history": "/api/history/{service}",
            "dispatch_logs": "/api/dispatch-logs",
            "settings": "/api/settings",
            "docs": "/api/docs",
            "health": "/api/health",
        },
    }


@app.get("/api/health")
async def health():
    """Health check endpoint with local server status."""
    from livevision.supervisor import check_status, get_supervisor

    try:
        supervisor = get_supervisor()
        status = await check_status(supervisor.base_url, timeout=supervisor.status_timeout)
        local_server = {**status.to_dict(), **supervisor.describe()}
    except Exception as e:
        local_server = {"running": False, "model_ready": False, "error": str(e)}

    return {
        "status": "healthy",
        "local_server": local_server,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=12310)
