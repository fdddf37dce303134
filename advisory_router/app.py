"""
Composition root: wires the catalog, registry, classifier, tool invoker and
orchestrator from configuration and serves one advisory request end to end.
"""

from __future__ import annotations

import asyncio
import time
from functools import lru_cache
from typing import Any, Dict, Optional

from .agent.intent_classifier import ClassifierClient, IntentClassifier
from .agent.orchestrator import Orchestrator
from .domain.registry import ServerRegistry
from .infra.catalog_store import CatalogStore, get_catalog_store, load_catalog_seed
from .infra.config import AppConfig, EndpointConfig, get_config
from .infra.health import HealthMonitor
from .infra.tool_caller import ToolInvoker
from .observability.logging_utils import elapsed_ms, log_event, log_warning
from .schemas.models import OrchestrateRequest, OrchestrationResult


def build_endpoint_config(cfg: AppConfig) -> EndpointConfig:
    seed = load_catalog_seed(cfg.catalog_path)
    keys = sorted({s.endpoint_key for s in seed.servers if s.endpoint_key})
    return EndpointConfig.from_settings(cfg, keys=keys)


class AdvisoryService:
    def __init__(
        self,
        registry: ServerRegistry,
        orchestrator: Orchestrator,
        health: HealthMonitor,
        *,
        orchestrate_timeout: float = 60.0,
    ) -> None:
        self.registry = registry
        self.orchestrator = orchestrator
        self.health = health
        self._orchestrate_timeout = orchestrate_timeout

    @classmethod
    def from_config(
        cls,
        cfg: Optional[AppConfig] = None,
        *,
        store: Optional[CatalogStore] = None,
        endpoints: Optional[EndpointConfig] = None,
    ) -> "AdvisoryService":
        cfg = cfg or get_config()
        store = store or get_catalog_store()
        endpoints = endpoints or build_endpoint_config(cfg)
        registry = ServerRegistry(
            store, endpoints, max_depth=cfg.region_hierarchy_max_depth
        )
        client = None
        if cfg.intent_classification_url:
            client = ClassifierClient(
                cfg.intent_classification_url, timeout=cfg.classifier_timeout_seconds
            )
        orchestrator = Orchestrator(
            IntentClassifier(client),
            ToolInvoker(default_timeout=cfg.tool_call_timeout_seconds),
            tool_timeout=cfg.tool_call_timeout_seconds,
            diagnosis_url=cfg.diagnosis_url,
            diagnosis_timeout=cfg.diagnosis_timeout_seconds,
        )
        health = HealthMonitor(
            store, endpoints, timeout=cfg.health_check_timeout_seconds
        )
        return cls(
            registry,
            orchestrator,
            health,
            orchestrate_timeout=cfg.orchestrate_timeout_seconds,
        )

    async def handle(self, request: OrchestrateRequest) -> Dict[str, Any]:
        started = time.perf_counter()
        lat, lon = request.latitude, request.longitude
        log_event(
            "advisory_request",
            has_location=lat is not None and lon is not None,
            language=request.language,
            message_length=len(request.message),
            has_image=bool(request.image),
        )

        servers = await self.registry.get_active_servers_for_location(lat, lon)
        try:
            result = await asyncio.wait_for(
                self.orchestrator.orchestrate(
                    request.message,
                    lat,
                    lon,
                    servers,
                    request.language,
                    servers.detected_regions,
                ),
                timeout=self._orchestrate_timeout,
            )
        except asyncio.TimeoutError:
            log_warning("orchestration_timeout", timeout_s=self._orchestrate_timeout)
            result = OrchestrationResult()

        results = dict(result.results)
        intents = list(result.detected_categories)
        if request.image:
            crops = result.classification.crops if result.classification else []
            expected_crop = crops[0].label.lower() if crops else None
            diagnosis = await self.orchestrator.diagnose_image(
                request.image, expected_crop
            )
            if diagnosis and not diagnosis.get("error"):
                results["diagnosis"] = diagnosis
                intents.append("diagnosis")

        return {
            "results": results,
            "intents_detected": intents,
            "fallback_contexts": {
                key: ctx.model_dump() for key, ctx in result.fallback_contexts.items()
            },
            "tools_used": list(results),
            "extracted_entities": result.extracted_entities(),
            "detected_regions": [r.model_dump() for r in servers.detected_regions],
            "_meta": {
                "duration_ms": elapsed_ms(started),
                "servers_available": len(servers.all_servers()),
                "regions": [r.name for r in servers.detected_regions],
                "intent_source": result.intent_source,
            },
        }


@lru_cache(maxsize=1)
def get_service() -> AdvisoryService:
    return AdvisoryService.from_config()
