from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Category(str, Enum):
    """Advisory topics that select which tool servers to invoke."""

    WEATHER = "weather"
    SOIL = "soil"
    FERTILIZER = "fertilizer"
    FEED = "feed"
    CLIMATE = "climate"
    ADVISORY = "advisory"


ServerCategory = Literal["weather", "agriculture", "ai", "utility", "general"]
HealthStatus = Literal["healthy", "unhealthy", "unavailable", "unknown"]
IntentSource = Literal["keywords", "llm", "none"]


class Region(BaseModel):
    """Named area approximated by an inclusive bounding box."""

    id: str
    name: str
    code: str
    level: int = 0
    min_lat: Optional[float] = None
    max_lat: Optional[float] = None
    min_lon: Optional[float] = None
    max_lon: Optional[float] = None
    parent_region_id: Optional[str] = None
    is_active: bool = True

    @property
    def has_bounds(self) -> bool:
        return None not in (self.min_lat, self.max_lat, self.min_lon, self.max_lon)

    def contains(self, lat: float, lon: float) -> bool:
        if not self.has_bounds:
            return False
        return (
            self.min_lat <= lat <= self.max_lat
            and self.min_lon <= lon <= self.max_lon
        )


class DetectedRegion(BaseModel):
    name: str
    code: str
    level: int

    @classmethod
    def from_region(cls, region: Region) -> "DetectedRegion":
        return cls(name=region.name, code=region.code, level=region.level)


class ToolServer(BaseModel):
    """Catalog entry for an external JSON-RPC tool server."""

    slug: str
    name: str
    category: ServerCategory = "general"
    description: Optional[str] = None
    tools: List[str] = Field(default_factory=list)
    capabilities: List[str] = Field(default_factory=list)
    is_global: bool = False
    is_active: bool = True
    is_deployed: bool = True
    endpoint_key: Optional[str] = Field(
        default=None, description="Key looked up in the endpoint configuration."
    )
    health_status: HealthStatus = "unknown"
    last_health_check: Optional[datetime] = None


class RegionToolMapping(BaseModel):
    region_id: str
    server_slug: str
    priority: int = 0
    is_active: bool = True


class MappingRecord(BaseModel):
    """A mapping row joined with its region and server."""

    mapping: RegionToolMapping
    region: Region
    server: ToolServer


class ResolvedServer(BaseModel):
    """Reachable tool server with its endpoint already resolved."""

    slug: str
    name: str
    category: ServerCategory
    tools: List[str] = Field(default_factory=list)
    capabilities: List[str] = Field(default_factory=list)
    endpoint: str
    source_region: Optional[str] = None

    def public_view(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"endpoint"})


class ServersForLocation(BaseModel):
    global_servers: List[ResolvedServer] = Field(default_factory=list, alias="global")
    regional: List[ResolvedServer] = Field(default_factory=list)
    detected_regions: List[DetectedRegion] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    def all_servers(self) -> List[ResolvedServer]:
        return [*self.global_servers, *self.regional]


class EntityRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    canonical_name: Optional[str] = None
    confidence: Optional[float] = None
    type: Optional[str] = None

    @property
    def label(self) -> str:
        return self.canonical_name or self.name


class IntentClassification(BaseModel):
    """Structured output of the remote intent classifier."""

    model_config = ConfigDict(extra="ignore")

    main_intent: str = ""
    confidence: float = 0.0
    crops: List[EntityRef] = Field(default_factory=list)
    livestock: List[EntityRef] = Field(default_factory=list)
    practices: List[EntityRef] = Field(default_factory=list)

    @field_validator("main_intent", mode="before")
    @classmethod
    def coerce_main_intent(cls, value: object) -> str:
        return "" if value is None else str(value)

    @field_validator("crops", "livestock", "practices", mode="before")
    @classmethod
    def coerce_entities(cls, value: object) -> list:
        if not value:
            return []
        if not isinstance(value, list):
            value = [value]
        return [{"name": item} if isinstance(item, str) else item for item in value]


class IntentDetection(BaseModel):
    categories: List[Category] = Field(default_factory=list)
    raw_intents: List[str] = Field(default_factory=list)
    source: IntentSource = "none"
    classification: Optional[IntentClassification] = None


class FailureKind(str, Enum):
    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    MALFORMED = "malformed"
    UPSTREAM = "upstream"
    CONFIGURATION_GAP = "configuration_gap"
    CLASSIFICATION_UNAVAILABLE = "classification_unavailable"


class ToolCallResult(BaseModel):
    """Tagged outcome of one tool call; failures never raise."""

    success: bool
    data: Any = None
    error: Optional[str] = None
    failure: Optional[FailureKind] = None

    @classmethod
    def ok(cls, data: Any) -> "ToolCallResult":
        return cls(success=True, data=data)

    @classmethod
    def failed(cls, kind: FailureKind, error: str) -> "ToolCallResult":
        return cls(success=False, error=error, failure=kind)

    def payload(self) -> Any:
        return self.data if self.success else {"error": self.error}


class FallbackContext(BaseModel):
    """Tells the answer composer to rely on general knowledge."""

    category: str
    service_provider: str
    instruction: str
    reason: str
    use_general_knowledge: bool = True


class OrchestrationResult(BaseModel):
    results: Dict[str, Any] = Field(default_factory=dict)
    detected_categories: List[str] = Field(default_factory=list)
    classification: Optional[IntentClassification] = None
    intent_source: IntentSource = "none"
    raw_intents: List[str] = Field(default_factory=list)
    fallback_contexts: Dict[str, FallbackContext] = Field(default_factory=dict)

    def tools_used(self) -> List[str]:
        return list(self.results.keys())

    def extracted_entities(self) -> Optional[Dict[str, Any]]:
        if self.classification is None:
            return None
        cls = self.classification
        return {
            "crops": [item.label for item in cls.crops],
            "livestock": [item.label for item in cls.livestock],
            "practices": [item.name for item in cls.practices],
            "main_intent": cls.main_intent,
            "confidence": cls.confidence,
        }


class ServerHealth(BaseModel):
    slug: str
    name: str
    status: HealthStatus
    response_time_ms: Optional[int] = None
    error: Optional[str] = None
    last_check: datetime


class HealthSummary(BaseModel):
    total: int
    healthy: int
    unhealthy: int
    unavailable: int
    health_percentage: int

    @classmethod
    def from_results(cls, results: List[ServerHealth]) -> "HealthSummary":
        healthy = sum(1 for item in results if item.status == "healthy")
        unhealthy = sum(1 for item in results if item.status == "unhealthy")
        unavailable = sum(1 for item in results if item.status == "unavailable")
        total = len(results)
        return cls(
            total=total,
            healthy=healthy,
            unhealthy=unhealthy,
            unavailable=unavailable,
            health_percentage=round(healthy * 100 / total) if total else 0,
        )


class OrchestrateRequest(BaseModel):
    """Inbound chat payload accepted by the HTTP surface."""

    message: str
    language: str = "en"
    latitude: Optional[float] = Field(default=None, ge=-90.0, le=90.0)
    longitude: Optional[float] = Field(default=None, ge=-180.0, le=180.0)
    image: Optional[str] = Field(
        default=None, description="Base64 image for plant health diagnosis."
    )
