"""Resource locator: maps addressing strings to registered generators.

An address looks like ``scheme://segment/segment?key=value&key=value``.
Templates may contain at most one ``{placeholder}`` segment.  Resolution
tries an exact static match first, then a structural match against each
template in registration order.
"""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qsl, unquote

import structlog
from pydantic import BaseModel, ConfigDict

from slackmcp.domain.errors import DuplicateTemplateError, NotFoundError
from slackmcp.domain.types import RefreshPolicy

logger = structlog.get_logger()

Generator = Callable[[dict[str, str], dict[str, str]], Awaitable[Any]]

_PLACEHOLDER = re.compile(r"^\{([A-Za-z_][A-Za-z0-9_]*)\}$")


class ResourceDescriptor(BaseModel):
    """Registration record for one resource template.  Immutable."""

    model_config = ConfigDict(frozen=True)

    template: str
    name: str
    description: str = ""
    content_type: str = "application/json"
    requires_remote_auth: bool = True
    refresh_policy: RefreshPolicy = RefreshPolicy.DYNAMIC
    refresh_interval_seconds: int | None = None


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving one address."""

    descriptor: ResourceDescriptor
    generator: Generator
    path_params: dict[str, str] = field(default_factory=dict)
    query_params: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class _Route:
    descriptor: ResourceDescriptor
    generator: Generator
    scheme: str
    segments: tuple[str, ...]
    placeholder_index: int | None
    placeholder_name: str | None


def split_address(address: str) -> tuple[str, tuple[str, ...], str]:
    """Split an address into ``(scheme, path segments, query string)``.

    Raises:
        NotFoundError: If the address has no ``scheme://`` prefix.
    """
    base, _, query = address.strip().partition("?")
    scheme, sep, path = base.partition("://")
    if not sep or not scheme:
        raise NotFoundError(f"Malformed resource address: {address}", {"uri": address})
    segments = tuple(s for s in path.strip("/").split("/") if s)
    return scheme.lower(), segments, query


def parse_query(query: str) -> dict[str, str]:
    """Parse a query string; a repeated key keeps its last value."""
    return dict(parse_qsl(query, keep_blank_values=True))


class ResourceLocator:
    """Registry of resource templates with static-first resolution."""

    def __init__(self) -> None:
        self._routes: list[_Route] = []
        self._static: dict[tuple[str, tuple[str, ...]], _Route] = {}
        self._templates: set[str] = set()

    def register(self, descriptor: ResourceDescriptor, generator: Generator) -> None:
        """Add a template.

        Raises:
            DuplicateTemplateError: If the template string is already registered.
            ValueError: If the template has more than one placeholder.
        """
        template = descriptor.template
        if template in self._templates:
            raise DuplicateTemplateError(template)

        scheme, segments, query = split_address(template)
        if query:
            raise ValueError(f"Template must not carry a query string: {template}")
        placeholders = [
            (i, m.group(1)) for i, s in enumerate(segments) if (m := _PLACEHOLDER.match(s))
        ]
        if len(placeholders) > 1:
            raise ValueError(f"Template has more than one placeholder: {template}")

        index, name = placeholders[0] if placeholders else (None, None)
        route = _Route(descriptor, generator, scheme, segments, index, name)
        self._templates.add(template)
        self._routes.append(route)
        if index is None:
            self._static[(scheme, segments)] = route
        logger.debug("resource_registered", template=template)

    @property
    def descriptors(self) -> list[ResourceDescriptor]:
        return [route.descriptor for route in self._routes]

    def resolve(self, address: str) -> Resolution:
        """Resolve *address* to its generator and parameters.

        Raises:
            NotFoundError: If no registered template matches.
        """
        scheme, segments, query = split_address(address)
        query_params = parse_query(query)

        static = self._static.get((scheme, segments))
        if static is not None:
            return Resolution(static.descriptor, static.generator, {}, query_params)

        for route in self._routes:
            if route.placeholder_index is None:
                continue
            path_params = self._match(route, scheme, segments)
            if path_params is not None:
                return Resolution(route.descriptor, route.generator, path_params, query_params)

        logger.info("resource_not_found", uri=address)
        raise NotFoundError(f"Resource not found: {address}", {"uri": address})

    @staticmethod
    def _match(
        route: _Route, scheme: str, segments: tuple[str, ...]
    ) -> dict[str, str] | None:
        if route.scheme != scheme or len(route.segments) != len(segments):
            return None
        captured: dict[str, str] = {}
        for i, (expected, actual) in enumerate(zip(route.segments, segments, strict=True)):
            if i == route.placeholder_index:
                captured[route.placeholder_name or ""] = unquote(actual)
            elif expected != actual:
                return None
        return captured
