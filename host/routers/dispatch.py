"""Serves routes registered by plugins.

Routes are looked up in the host route registry on every request, so a
route disappears the moment its plugin is disabled; nothing is mounted on the
FastAPI app itself.
"""

import inspect
import logging

from fastapi import APIRouter, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response

from host.constants import PLUGIN_ROUTE_PREFIX
from host.dependencies import get_host_registries

logger = logging.getLogger(__name__)

router = APIRouter(prefix=PLUGIN_ROUTE_PREFIX, tags=["plugin-routes"])


@router.api_route("/{path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
async def dispatch(path: str, request: Request):
    """Resolve ``/p/<path>`` against routes registered by enabled plugins."""
    route = "/" + path
    candidates = get_host_registries().routes.handlers(route)
    if not candidates:
        raise HTTPException(status_code=404, detail=f"No plugin route for {route}")

    # Newest registration accepting the method wins
    registration = next(
        (r for r in reversed(candidates) if request.method in r.metadata.get("methods", ("GET",))),
        None,
    )
    if registration is None:
        raise HTTPException(status_code=405, detail=f"{request.method} not allowed for {route}")

    plugin = registration.metadata.get("plugin", "?")
    handler = registration.handler
    try:
        if inspect.iscoroutinefunction(handler):
            result = await handler(request)
        else:
            result = await run_in_threadpool(handler, request)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error in route {route} from plugin {plugin}: {e}")
        return JSONResponse(status_code=500, content={"error": f"Plugin route {route} failed"})

    if isinstance(result, Response):
        return result
    return JSONResponse(content=result)
