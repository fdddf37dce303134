from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from ..schemas.models import Category, DetectedRegion, IntentClassification


GLOBAL_INTENT_KEYWORDS: Dict[Category, List[str]] = {
    Category.WEATHER: [
        "weather",
        "forecast",
        "temperature",
        "rain",
        "rainfall",
        "precipitation",
        "humidity",
        "wind",
        "will it rain",
        "how hot",
        "how cold",
        "sunny",
        "cloudy",
        "storm",
        "drought",
        "flood",
        "climate today",
        "weather today",
        "tomorrow weather",
    ],
    Category.SOIL: [
        "soil",
        "ph",
        "nitrogen",
        "phosphorus",
        "potassium",
        "soil quality",
        "soil test",
        "soil analysis",
        "soil nutrients",
        "soil health",
        "land quality",
    ],
    Category.FERTILIZER: [
        "fertilizer",
        "fertiliser",
        "urea",
        "nps",
        "dap",
        "compost",
        "manure",
        "fertilizer recommendation",
        "what fertilizer",
        "which fertilizer",
    ],
    Category.FEED: [
        "feed",
        "cow",
        "cattle",
        "dairy",
        "livestock",
        "milk",
        "fodder",
        "diet",
        "ration",
        "animal feed",
        "feeding",
        "nutrition",
        "lactating",
    ],
    Category.CLIMATE: [
        "seasonal",
        "season",
        "monsoon",
        "long term",
        "climate forecast",
        "seasonal outlook",
        "climate prediction",
        "next season",
    ],
    Category.ADVISORY: [
        "growth stage",
        "crop stage",
        "recommendation",
        "advice",
        "what should i do",
        "pest",
        "disease",
        "harvest",
        "planting advice",
        "crop management",
    ],
}

INTENT_TO_CATEGORY: Dict[str, Category] = {
    "weather_forecast": Category.WEATHER,
    "weather": Category.WEATHER,
    "planting_advice": Category.WEATHER,
    "irrigation_advice": Category.WEATHER,
    "climate_forecast": Category.CLIMATE,
    "climate": Category.CLIMATE,
    "seasonal_forecast": Category.CLIMATE,
    "seasonal": Category.CLIMATE,
    "soil_analysis": Category.SOIL,
    "soil": Category.SOIL,
    "soil_nutrients": Category.SOIL,
    "fertilizer_recommendation": Category.FERTILIZER,
    "fertilization": Category.FERTILIZER,
    "fertilizer": Category.FERTILIZER,
    "feeding": Category.FEED,
    "livestock": Category.FEED,
    "dairy": Category.FEED,
    "feed": Category.FEED,
    "nutrition": Category.FEED,
    "crop_advisory": Category.ADVISORY,
    "advisory": Category.ADVISORY,
    "growth_stage": Category.ADVISORY,
    "crop_management": Category.ADVISORY,
}

KNOWN_COUNTRIES = ("ethiopia", "kenya", "india", "vietnam", "tanzania")

CROP_KEYWORDS = (
    "maize",
    "wheat",
    "teff",
    "sorghum",
    "barley",
    "rice",
    "coffee",
    "beans",
    "potato",
    "cassava",
)


def _contains_any(text: str, keywords: Iterable[str]) -> bool:
    return any(word in text for word in keywords)


def detect_intents_from_keywords(message: Optional[str]) -> List[Category]:
    if not message:
        return []
    text = message.lower()
    return [
        category
        for category, keywords in GLOBAL_INTENT_KEYWORDS.items()
        if _contains_any(text, keywords)
    ]


def map_intent_to_category(intent_name: str) -> Optional[Category]:
    return INTENT_TO_CATEGORY.get((intent_name or "").strip().lower())


def extract_categories_from_classification(
    classification: IntentClassification,
) -> List[Category]:
    main_intent = (classification.main_intent or "").lower()
    practices = {(item.name or "").lower() for item in classification.practices}
    has_livestock = bool(classification.livestock)

    categories: List[Category] = []
    # Short-term forecasts only; seasonal outlooks belong to climate.
    if "weather" in main_intent or (
        "forecast" in main_intent
        and "seasonal" not in main_intent
        and "climate" not in main_intent
    ):
        categories.append(Category.WEATHER)
    if _contains_any(main_intent, ("climate", "seasonal", "season outlook")):
        categories.append(Category.CLIMATE)
    if "soil" in main_intent or practices & {"soil_preparation", "soil_analysis"}:
        categories.append(Category.SOIL)
    if "fertiliz" in main_intent or "fertilization" in practices:
        categories.append(Category.FERTILIZER)
    if (
        has_livestock
        or "feeding" in practices
        or _contains_any(main_intent, ("feeding", "feed", "nutrition"))
    ):
        categories.append(Category.FEED)
    if _contains_any(
        main_intent, ("advisory", "growth stage", "crop management")
    ) or practices & {"harvesting", "pest_management", "disease_management"}:
        categories.append(Category.ADVISORY)

    mapped = map_intent_to_category(main_intent)
    if mapped is not None and mapped not in categories:
        categories.append(mapped)
    return categories


def get_country_from_regions(detected_regions: Iterable[DetectedRegion]) -> str:
    names = {(region.name or "").lower() for region in detected_regions or []}
    for country in KNOWN_COUNTRIES:
        if country in names:
            return country
    return "global"


def detect_crop_from_text(message: Optional[str]) -> Optional[str]:
    text = (message or "").lower()
    for crop in CROP_KEYWORDS:
        if crop in text:
            return crop
    return None
