from .models import (
    Category,
    DetectedRegion,
    EntityRef,
    FailureKind,
    FallbackContext,
    HealthSummary,
    IntentClassification,
    IntentDetection,
    MappingRecord,
    OrchestrateRequest,
    OrchestrationResult,
    Region,
    RegionToolMapping,
    ResolvedServer,
    ServerHealth,
    ServersForLocation,
    ToolCallResult,
    ToolServer,
)

__all__ = [
    "Category",
    "DetectedRegion",
    "EntityRef",
    "FailureKind",
    "FallbackContext",
    "HealthSummary",
    "IntentClassification",
    "IntentDetection",
    "MappingRecord",
    "OrchestrateRequest",
    "OrchestrationResult",
    "Region",
    "RegionToolMapping",
    "ResolvedServer",
    "ServerHealth",
    "ServersForLocation",
    "ToolCallResult",
    "ToolServer",
]
