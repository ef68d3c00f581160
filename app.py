"""Main FastAPI application for the plugin host."""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()

from host.constants import LOGS_DIR

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 10


def setup_logging(logs_dir: Path = LOGS_DIR, log_level: str = None) -> RotatingFileHandler:
    """Log to stderr and to logs/application.log, rotated at 10 MB with 10 backups kept."""
    level = getattr(logging, (log_level or os.getenv('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)

    logs_dir.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        logs_dir / "application.log",
        maxBytes=LOG_FILE_MAX_BYTES,
        backupCount=LOG_FILE_BACKUPS,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(file_handler)
    return file_handler


# Configure logging BEFORE importing any modules that use logger
log_file_handler = setup_logging()
logger = logging.getLogger(__name__)

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from host import __version__
from host.constants import PLUGINS_DIR
from host.dependencies import get_plugin_manager
from host.routers import dispatch_router, plugins_router

# Comma-separated list; "*" allows any origin
cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

app = FastAPI(
    title="Plugin Host",
    description="Host runtime that loads and supervises third-party plugins",
    version=__version__,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials="*" not in cors_origins,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["*"],
)
app.include_router(plugins_router)
app.include_router(dispatch_router)


@app.get("/")
async def root():
    """Host summary: plugin counts and the names of enabled plugins."""
    manager = get_plugin_manager()
    return {
        "service": "plugin-host",
        "version": __version__,
        "plugins": len(manager.get_plugins()),
        "enabled": manager.get_enabled_plugins(),
    }


@app.on_event("startup")
async def load_plugins():
    logger.info(f"Plugin host {__version__} starting, plugins from {PLUGINS_DIR}")
    await get_plugin_manager().load_all()


@app.on_event("shutdown")
async def stop_plugins():
    # Tears plugins down without touching their persisted desired state
    logger.info("Plugin host stopping")
    await get_plugin_manager().shutdown()


def main():
    import uvicorn

    uvicorn.run(
        "app:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "9090")),
        log_config=None,
    )


if __name__ == "__main__":
    main()
