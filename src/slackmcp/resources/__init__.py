"""Resource addressing: the template locator and the built-in ``slack://`` catalog."""

from slackmcp.resources.catalog import ResourceCatalog, parse_params
from slackmcp.resources.locator import (
    Generator,
    Resolution,
    ResourceDescriptor,
    ResourceLocator,
    split_address,
)

__all__ = [
    "Generator",
    "Resolution",
    "ResourceCatalog",
    "ResourceDescriptor",
    "ResourceLocator",
    "parse_params",
    "split_address",
]
