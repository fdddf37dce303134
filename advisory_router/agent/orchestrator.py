"""
Intent-driven fan-out to regional tool servers.

For each detected category the orchestrator picks the designated server from
`CATEGORY_BINDINGS`, runs its tool calls concurrently, and stores either the
payload or a fallback context that tells the answer composer to rely on
general knowledge.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..infra.tool_caller import ToolInvoker, is_error_or_no_data
from ..observability.logging_utils import elapsed_ms, log_event, log_warning
from ..prompts import fallback_messages as msgs
from ..schemas.models import (
    Category,
    DetectedRegion,
    FailureKind,
    FallbackContext,
    IntentClassification,
    OrchestrationResult,
    ResolvedServer,
    ServersForLocation,
    ToolCallResult,
)
from .bindings import CATEGORY_BINDINGS, CategoryBinding, RequestContext
from .intent_classifier import IntentClassifier
from .intent_rules import detect_crop_from_text, get_country_from_regions


DIAGNOSIS_TOOL = "diagnose_plant_health"

CategoryOutcome = Tuple[str, Optional[Any], Optional[FallbackContext]]


def _first_label(entities: Iterable[Any]) -> Optional[str]:
    for entity in entities:
        label = getattr(entity, "label", None)
        if label:
            return label
    return None


def _payload_error(payload: Any) -> Any:
    if isinstance(payload, Mapping) and payload.get("error"):
        return payload["error"]
    return "no data"


def build_request_context(
    message: str,
    lat: Optional[float],
    lon: Optional[float],
    language: str,
    detected_regions: List[DetectedRegion],
    classification: Optional[IntentClassification],
) -> RequestContext:
    country = get_country_from_regions(detected_regions)
    region_name = detected_regions[0].name if detected_regions else country
    crop = None
    livestock = None
    if classification is not None:
        crop = _first_label(classification.crops)
        livestock = _first_label(classification.livestock)
    crop = (crop or detect_crop_from_text(message) or "").lower() or None
    return RequestContext(
        message=message,
        lat=lat,
        lon=lon,
        language=language,
        country=country,
        region_name=region_name,
        crop=crop,
        livestock=livestock,
    )


class Orchestrator:
    def __init__(
        self,
        classifier: IntentClassifier,
        invoker: ToolInvoker,
        *,
        bindings: Optional[Mapping[Category, CategoryBinding]] = None,
        tool_timeout: float = 30.0,
        diagnosis_url: Optional[str] = None,
        diagnosis_timeout: float = 45.0,
    ) -> None:
        self._classifier = classifier
        self._invoker = invoker
        self._bindings = dict(CATEGORY_BINDINGS if bindings is None else bindings)
        self._tool_timeout = tool_timeout
        self._diagnosis_url = diagnosis_url
        self._diagnosis_timeout = diagnosis_timeout

    async def orchestrate(
        self,
        message: str,
        lat: Optional[float],
        lon: Optional[float],
        servers: ServersForLocation,
        language: str = "en",
        detected_regions: Optional[List[DetectedRegion]] = None,
    ) -> OrchestrationResult:
        started = time.perf_counter()
        if detected_regions is None:
            detected_regions = servers.detected_regions
        try:
            result = await self._orchestrate(
                message, lat, lon, servers, language, detected_regions
            )
        except Exception as exc:
            log_warning("orchestration_failed", error=str(exc))
            return OrchestrationResult()
        log_event(
            "orchestration_done",
            categories=result.detected_categories,
            intent_source=result.intent_source,
            results=list(result.results),
            fallbacks=list(result.fallback_contexts),
            elapsed_ms=elapsed_ms(started),
        )
        return result

    async def _orchestrate(
        self,
        message: str,
        lat: Optional[float],
        lon: Optional[float],
        servers: ServersForLocation,
        language: str,
        detected_regions: List[DetectedRegion],
    ) -> OrchestrationResult:
        country = get_country_from_regions(detected_regions)
        detection = await self._classifier.detect_intents(message, country, language)
        ctx = build_request_context(
            message, lat, lon, language, detected_regions, detection.classification
        )

        by_slug: Dict[str, ResolvedServer] = {}
        for server in servers.all_servers():
            by_slug.setdefault(server.slug, server)

        categories: List[Category] = list(dict.fromkeys(detection.categories))
        outcomes = await asyncio.gather(
            *(self._run_category(category, ctx, by_slug) for category in categories)
        )

        results: Dict[str, Any] = {}
        fallbacks: Dict[str, FallbackContext] = {}
        for key, payload, fallback in outcomes:
            if fallback is not None:
                fallbacks[key] = fallback
            else:
                results[key] = payload
        return OrchestrationResult(
            results=results,
            detected_categories=[category.value for category in categories],
            classification=detection.classification,
            intent_source=detection.source,
            raw_intents=detection.raw_intents,
            fallback_contexts=fallbacks,
        )

    def _fallback(
        self, binding: Optional[CategoryBinding], category: Category, ctx: RequestContext, reason: str
    ) -> FallbackContext:
        crop = ctx.crop
        if binding is not None and category is Category.FERTILIZER and ctx.has_coordinates:
            crop = binding.build_args(ctx).get("crop", crop)
        log_event("category_fallback", category=category.value, reason=reason)
        return msgs.build_fallback_context(
            category.value,
            reason=reason,
            region=ctx.region_name,
            crop=crop,
            livestock=ctx.livestock,
        )

    async def _run_category(
        self,
        category: Category,
        ctx: RequestContext,
        servers_by_slug: Mapping[str, ResolvedServer],
    ) -> CategoryOutcome:
        binding = self._bindings.get(category)
        if binding is None:
            return category.value, None, self._fallback(
                None, category, ctx, msgs.REASON_NO_SERVER
            )
        if binding.requires_coordinates and not ctx.has_coordinates:
            return category.value, None, self._fallback(
                binding, category, ctx, msgs.REASON_NO_COORDINATES
            )
        server = next(
            (servers_by_slug[slug] for slug in binding.slugs if slug in servers_by_slug),
            None,
        )
        if server is None:
            return category.value, None, self._fallback(
                binding, category, ctx, msgs.REASON_NO_SERVER
            )

        try:
            merged = await self._dispatch(binding, server, ctx)
        except Exception as exc:
            log_warning(
                "category_dispatch_failed",
                category=category.value,
                server=server.slug,
                error=str(exc),
            )
            merged = {"error": str(exc)}

        if is_error_or_no_data(merged):
            return category.value, None, self._fallback(
                binding, category, ctx, binding.failure_reason
            )
        return category.value, merged, None

    async def _dispatch(
        self, binding: CategoryBinding, server: ResolvedServer, ctx: RequestContext
    ) -> Any:
        args = binding.build_args(ctx)
        headers = binding.build_headers(ctx) if binding.build_headers else None
        calls: List[ToolCallResult] = await asyncio.gather(
            *(
                self._invoker.call_tool(
                    server.endpoint,
                    sub.tool,
                    {**args, **sub.extra_args},
                    headers,
                    self._tool_timeout,
                )
                for sub in binding.calls
            )
        )
        unusable = [
            not result.success or is_error_or_no_data(result.data) for result in calls
        ]
        if all(unusable):
            return {
                "error": "; ".join(
                    result.error or str(_payload_error(result.data))
                    for result in calls
                )
            }
        if len(calls) == 1:
            return calls[0].data
        parts = {
            sub.key: None if bad else result.data
            for sub, result, bad in zip(binding.calls, calls, unusable)
        }
        return binding.merge(parts, ctx) if binding.merge else parts

    async def diagnose_image(
        self, image_b64: str, expected_crop: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Plant health diagnosis; None when no diagnosis server is configured."""
        if not self._diagnosis_url or not image_b64:
            return None
        args: Dict[str, Any] = {"image": image_b64}
        if expected_crop:
            args["crop"] = expected_crop
        log_event("diagnosis_started", has_crop=bool(expected_crop))
        result = await self._invoker.call_tool(
            self._diagnosis_url, DIAGNOSIS_TOOL, args, timeout=self._diagnosis_timeout
        )
        if not result.success:
            if result.failure is FailureKind.TIMEOUT:
                return {"error": "timeout", "message": "Plant diagnosis timed out."}
            return {"error": result.error or "diagnosis failed"}
        if isinstance(result.data, dict):
            return result.data
        return {"text": result.data, "format": "text"}
