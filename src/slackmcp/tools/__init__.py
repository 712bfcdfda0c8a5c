"""Action tools: argument models and the ``ToolSurface`` dispatcher."""

from slackmcp.tools.surface import (
    CollectThreadsArgs,
    GetThreadDetailsArgs,
    ListActiveThreadsArgs,
    ResolveIdentifierArgs,
    ToolSurface,
)

__all__ = [
    "CollectThreadsArgs",
    "GetThreadDetailsArgs",
    "ListActiveThreadsArgs",
    "ResolveIdentifierArgs",
    "ToolSurface",
]
