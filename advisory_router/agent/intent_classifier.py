from __future__ import annotations

from typing import Optional

import httpx
from pydantic import ValidationError

from ..observability.logging_utils import log_event, log_warning, summarize_text
from ..schemas.models import FailureKind, IntentClassification, IntentDetection
from .intent_rules import (
    detect_intents_from_keywords,
    extract_categories_from_classification,
)


class ClassifierClient:
    """HTTP client for the remote multi-language intent classifier."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._url = f"{base_url.rstrip('/')}/tools/classify_intent"
        self._timeout = timeout
        self._transport = transport

    async def classify(
        self, message: str, language: str = "en"
    ) -> Optional[IntentClassification]:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, trust_env=False, transport=self._transport
            ) as client:
                response = await client.post(
                    self._url,
                    json={"message": message, "language": language},
                    headers={"Content-Type": "application/json"},
                )
                response.raise_for_status()
                payload = response.json()
        except Exception as exc:
            log_warning(
                "intent_classifier_unavailable",
                kind=FailureKind.CLASSIFICATION_UNAVAILABLE.value,
                error=str(exc),
            )
            return None

        if not isinstance(payload, dict) or not payload.get("success"):
            return None
        raw = payload.get("classification")
        if not raw:
            return None
        try:
            classification = IntentClassification.model_validate(raw)
        except ValidationError as exc:
            log_warning(
                "intent_classifier_malformed",
                kind=FailureKind.MALFORMED.value,
                error=summarize_text(exc),
            )
            return None
        log_event(
            "intent_classifier_response",
            main_intent=classification.main_intent,
            confidence=classification.confidence,
        )
        return classification


class IntentClassifier:
    """Keyword table first; the remote classifier only when no keyword matches."""

    def __init__(self, client: Optional[ClassifierClient] = None) -> None:
        self._client = client

    async def detect_intents(
        self, message: str, country: str = "global", language: str = "en"
    ) -> IntentDetection:
        keyword_categories = detect_intents_from_keywords(message)
        if keyword_categories:
            log_event(
                "intent_keywords_matched",
                categories=[c.value for c in keyword_categories],
                country=country,
            )
            return IntentDetection(
                categories=keyword_categories,
                raw_intents=[c.value for c in keyword_categories],
                source="keywords",
            )

        if self._client is None or not (message or "").strip():
            return IntentDetection(source="none")

        classification = await self._client.classify(message, language)
        if classification is None:
            return IntentDetection(source="none")

        categories = extract_categories_from_classification(classification)
        main_intent = classification.main_intent.lower()
        log_event(
            "intent_llm_classified",
            main_intent=main_intent,
            categories=[c.value for c in categories],
            country=country,
        )
        return IntentDetection(
            categories=categories,
            raw_intents=[main_intent] if main_intent else [],
            source="llm",
            classification=classification,
        )
