"""FastAPI router exposing the resource catalog and the tool surface over HTTP.

Routes read their collaborators from ``request.app.state.services`` so the
router can be mounted on any app built by ``create_app``.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Body, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from slackmcp.domain.models import ToolResponse
from slackmcp.domain.types import ErrorCode
from slackmcp.resources.catalog import ResourceCatalog
from slackmcp.tools.surface import ToolSurface

logger = structlog.get_logger()

router = APIRouter()


def _catalog(request: Request) -> ResourceCatalog:
    return request.app.state.services["catalog"]


def _tools(request: Request) -> ToolSurface:
    return request.app.state.services["tools"]


def _envelope(response: ToolResponse) -> JSONResponse:
    status = 404 if response.error_code == ErrorCode.NOT_FOUND else 200
    return JSONResponse(content=response.model_dump(mode="json"), status_code=status)


@router.get("/resources")
async def list_resources(request: Request) -> dict[str, Any]:
    """List every registered resource template."""
    resources = _catalog(request).list_resources()
    return {"resources": resources, "total": len(resources)}


@router.get("/resources/read")
async def read_resource(request: Request, uri: str = Query(..., min_length=1)) -> JSONResponse:
    """Read one resource by address.  404 when the address does not resolve."""
    response = await _catalog(request).read_resource(uri)
    return _envelope(response)


@router.get("/tools")
async def list_tools(request: Request) -> dict[str, Any]:
    """List tool names, descriptions and argument schemas."""
    tools = _tools(request).list_tools()
    return {"tools": tools, "total": len(tools)}


@router.post("/tools/{name}")
async def call_tool(
    name: str,
    request: Request,
    arguments: dict[str, Any] = Body(default_factory=dict),
) -> JSONResponse:
    """Call tool *name* with a JSON object of arguments.

    Raises:
        HTTPException: 404 if no tool has that name.
    """
    surface = _tools(request)
    if not surface.has_tool(name):
        raise HTTPException(status_code=404, detail=f"Unknown tool: {name}")
    response = await surface.call(name, arguments)
    logger.info("tool_called", tool=name, success=response.success)
    return _envelope(response)
