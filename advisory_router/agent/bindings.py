"""Declarative category -> tool server bindings used by the orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from ..prompts import fallback_messages as msgs
from ..schemas.models import Category


FERTILIZER_CROPS = ("maize", "wheat")
DEFAULT_FERTILIZER_CROP = "wheat"
DEFAULT_ADVISORY_CROP = "maize"
DEFAULT_LIVESTOCK = "dairy cattle"


@dataclass(frozen=True)
class RequestContext:
    message: str
    lat: Optional[float]
    lon: Optional[float]
    language: str = "en"
    country: str = "global"
    region_name: str = "global"
    crop: Optional[str] = None
    livestock: Optional[str] = None

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lon is not None


@dataclass(frozen=True)
class SubCall:
    key: str
    tool: str
    extra_args: Mapping[str, Any] = field(default_factory=dict)


ArgsBuilder = Callable[[RequestContext], Dict[str, Any]]
HeadersBuilder = Callable[[RequestContext], Dict[str, str]]
Merger = Callable[[Dict[str, Any], RequestContext], Any]


@dataclass(frozen=True)
class CategoryBinding:
    category: Category
    slugs: Tuple[str, ...]
    calls: Tuple[SubCall, ...]
    build_args: ArgsBuilder
    failure_reason: str
    requires_coordinates: bool = True
    build_headers: Optional[HeadersBuilder] = None
    merge: Optional[Merger] = None


def _coordinates(ctx: RequestContext) -> Dict[str, Any]:
    return {"latitude": ctx.lat, "longitude": ctx.lon}


def _fertilizer_crop(ctx: RequestContext) -> str:
    return ctx.crop if ctx.crop in FERTILIZER_CROPS else DEFAULT_FERTILIZER_CROP


def _fertilizer_args(ctx: RequestContext) -> Dict[str, Any]:
    return {"crop": _fertilizer_crop(ctx), **_coordinates(ctx)}


def _farm_headers(ctx: RequestContext) -> Dict[str, str]:
    return {"X-Farm-Latitude": str(ctx.lat), "X-Farm-Longitude": str(ctx.lon)}


def _feed_args(ctx: RequestContext) -> Dict[str, Any]:
    return {"query": ctx.livestock or DEFAULT_LIVESTOCK, "limit": 5}


def _advisory_args(ctx: RequestContext) -> Dict[str, Any]:
    return {"crop": ctx.crop or DEFAULT_ADVISORY_CROP, **_coordinates(ctx)}


def _unwrap(value: Any, key: str) -> Any:
    if isinstance(value, dict) and value.get(key) is not None:
        return value[key]
    return value


def merge_weather(parts: Dict[str, Any], ctx: RequestContext) -> Any:
    current = parts.get("current")
    forecast = parts.get("forecast")
    location = current.get("location") if isinstance(current, dict) else None
    return {
        "current": _unwrap(current, "current"),
        "forecast": _unwrap(forecast, "forecast"),
        "location": location or _coordinates(ctx),
    }


CATEGORY_BINDINGS: Dict[Category, CategoryBinding] = {
    Category.WEATHER: CategoryBinding(
        category=Category.WEATHER,
        slugs=("accuweather",),
        calls=(
            SubCall("current", "get_accuweather_current_conditions"),
            SubCall("forecast", "get_accuweather_weather_forecast", {"days": 5}),
        ),
        build_args=_coordinates,
        failure_reason=msgs.REASON_SERVICE_UNAVAILABLE,
        merge=merge_weather,
    ),
    Category.SOIL: CategoryBinding(
        category=Category.SOIL,
        slugs=("isda-soil",),
        calls=(SubCall("soil", "get_isda_soil_properties"),),
        build_args=_coordinates,
        failure_reason=msgs.REASON_OUTSIDE_COVERAGE,
    ),
    Category.FERTILIZER: CategoryBinding(
        category=Category.FERTILIZER,
        slugs=("nextgen", "ssfr"),
        calls=(SubCall("fertilizer", "get_fertilizer_recommendation"),),
        build_args=_fertilizer_args,
        build_headers=_farm_headers,
        failure_reason=msgs.REASON_DATA_UNAVAILABLE,
    ),
    Category.FEED: CategoryBinding(
        category=Category.FEED,
        slugs=("feed-formulation",),
        calls=(SubCall("feed", "search_feeds"),),
        build_args=_feed_args,
        failure_reason=msgs.REASON_DATABASE_UNAVAILABLE,
        requires_coordinates=False,
    ),
    Category.CLIMATE: CategoryBinding(
        category=Category.CLIMATE,
        slugs=("edacap",),
        calls=(SubCall("climate", "get_climate_forecast"),),
        build_args=_coordinates,
        failure_reason=msgs.REASON_FORECAST_UNAVAILABLE,
    ),
    Category.ADVISORY: CategoryBinding(
        category=Category.ADVISORY,
        slugs=("decision-tree",),
        calls=(SubCall("advisory", "get_crop_recommendation"),),
        build_args=_advisory_args,
        failure_reason=msgs.REASON_DATA_UNAVAILABLE,
    ),
}
