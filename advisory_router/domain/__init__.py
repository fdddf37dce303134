from __future__ import annotations

from typing import Any


_REGION_EXPORTS = {"RegionHierarchyError", "RegionResolver"}
_REGISTRY_EXPORTS = {"ServerRegistry"}

__all__ = sorted(_REGION_EXPORTS | _REGISTRY_EXPORTS)


def __getattr__(name: str) -> Any:
    if name in _REGION_EXPORTS:
        from . import regions as _regions

        return getattr(_regions, name)
    if name in _REGISTRY_EXPORTS:
        from . import registry as _registry

        return getattr(_registry, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
