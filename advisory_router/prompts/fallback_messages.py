from __future__ import annotations

from typing import Dict, Optional

from ..schemas.models import FallbackContext


REASON_NO_COORDINATES = "coordinates not provided"
REASON_NO_SERVER = "no data source available for this location"
REASON_SERVICE_UNAVAILABLE = "service unavailable"
REASON_OUTSIDE_COVERAGE = "outside coverage area"
REASON_DATA_UNAVAILABLE = "data unavailable"
REASON_DATABASE_UNAVAILABLE = "database unavailable"
REASON_FORECAST_UNAVAILABLE = "forecast unavailable"

SERVICE_PROVIDERS: Dict[str, str] = {
    "weather": "AccuWeather",
    "soil": "ISDA Soil Intelligence",
    "fertilizer": "NextGen Agro Advisory",
    "feed": "Feed Formulation Service",
    "climate": "EDACaP",
    "advisory": "TomorrowNow Decision Tree",
}

_TEMPLATES: Dict[str, str] = {
    "weather": (
        "I don't have real-time weather data for {region}. {reason_text}"
        "Provide general seasonal patterns."
    ),
    "soil": (
        "I don't have specific soil data for {region}. {reason_text}"
        "Provide general soil management advice."
    ),
    "fertilizer": (
        "I don't have site-specific fertilizer data for {region}. {reason_text}"
        "Provide general recommendations for {crop} in {region}."
    ),
    "feed": (
        "Feed data unavailable. {reason_text}"
        "Provide general feeding recommendations for {livestock}."
    ),
    "climate": (
        "I don't have seasonal forecast data for {region}. {reason_text}"
        "Provide general climate patterns."
    ),
    "advisory": (
        "I don't have crop decision-support data for {region}. {reason_text}"
        "Provide general crop management advice for {crop}."
    ),
}


def build_fallback_context(
    category: str,
    *,
    reason: str,
    region: Optional[str] = None,
    crop: Optional[str] = None,
    livestock: Optional[str] = None,
    service_provider: Optional[str] = None,
) -> FallbackContext:
    template = _TEMPLATES.get(category, "Service unavailable. {reason_text}")
    reason_text = f"Reason: {reason}. " if reason else ""
    instruction = template.format(
        region=region or "your location",
        crop=crop or "crops",
        livestock=livestock or "livestock",
        reason_text=reason_text,
    )
    return FallbackContext(
        category=category,
        service_provider=service_provider or SERVICE_PROVIDERS.get(category, "unknown"),
        instruction=instruction.strip(),
        reason=reason,
    )
