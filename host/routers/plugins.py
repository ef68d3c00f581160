"""Plugin management REST API endpoints."""

import logging
from pathlib import Path

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from host.dependencies import get_plugin_manager
from host.errors import LifecycleError, ManifestError, NotRegisteredError, PluginExistsError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/plugins", tags=["plugins"])


class PluginInstallRequest(BaseModel):
    """Request body for installing a plugin from local path."""

    path: str


def _lifecycle_failure(e: LifecycleError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"error": e.to_dict()})


@router.get("/")
async def list_plugins():
    """List all discovered plugins and their status."""
    manager = get_plugin_manager()
    return {"plugins": manager.get_plugins()}


@router.get("/{name}")
async def get_plugin(name: str):
    """Get detailed information about a specific plugin."""
    manager = get_plugin_manager()
    try:
        record = manager.get_plugin(name)
    except NotRegisteredError:
        raise HTTPException(status_code=404, detail=f"Plugin '{name}' not found")
    return record.to_dict()


@router.post("/{name}/enable")
async def enable_plugin(name: str):
    """Enable a plugin. Its commands and routes are live as soon as this returns."""
    manager = get_plugin_manager()
    try:
        record = await manager.enable_plugin(name)
    except NotRegisteredError:
        raise HTTPException(status_code=404, detail=f"Plugin '{name}' not found")
    except LifecycleError as e:
        return _lifecycle_failure(e)
    return {
        "message": f"Plugin '{name}' enabled",
        "plugin": record.to_dict(),
    }


@router.post("/{name}/disable")
async def disable_plugin(name: str):
    """Disable a plugin. Its commands and routes are removed immediately."""
    manager = get_plugin_manager()
    try:
        record = await manager.disable_plugin(name)
    except NotRegisteredError:
        raise HTTPException(status_code=404, detail=f"Plugin '{name}' not found")
    return {
        "message": f"Plugin '{name}' disabled",
        "plugin": record.to_dict(),
    }


@router.delete("/{name}")
async def delete_plugin(name: str):
    """Delete a plugin, its files and its persisted state."""
    manager = get_plugin_manager()
    try:
        await manager.delete_plugin(name)
    except NotRegisteredError:
        raise HTTPException(status_code=404, detail=f"Plugin '{name}' not found")
    except LifecycleError as e:
        return _lifecycle_failure(e)
    return {"message": f"Plugin '{name}' deleted"}


@router.post("/install")
async def install_plugin(body: PluginInstallRequest):
    """Install a plugin from a local path."""
    source_path = Path(body.path)
    if not source_path.exists():
        raise HTTPException(status_code=400, detail=f"Path does not exist: {body.path}")
    if not source_path.is_dir():
        raise HTTPException(status_code=400, detail=f"Path is not a directory: {body.path}")

    manager = get_plugin_manager()
    try:
        record = await manager.install_plugin(source_path)
    except ManifestError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PluginExistsError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {
        "message": f"Plugin '{record.name}' installed",
        "plugin": record.to_dict(),
    }
