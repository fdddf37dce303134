import argparse
import asyncio
import json
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from advisory_router.agent.intent_classifier import ClassifierClient, IntentClassifier
from advisory_router.infra.config import get_config


def _load_cases(path: Path) -> list[dict]:
    if not path.exists():
        raise FileNotFoundError(f"cases file not found: {path}")
    if path.suffix == ".jsonl":
        cases = []
        for line in path.read_text(encoding="utf-8").splitlines():
            line = line.strip()
            if not line:
                continue
            cases.append(json.loads(line))
        return cases
    if path.suffix == ".json":
        payload = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(payload, list):
            raise ValueError("JSON cases must be a list")
        return payload
    raise ValueError("cases file must be .jsonl or .json")


async def _evaluate_case(classifier: IntentClassifier, case: dict) -> dict:
    message = case.get("message", "")
    expected = case.get("expect", [])
    started = time.time()
    detection = await classifier.detect_intents(message, case.get("country", "global"))
    elapsed = time.time() - started

    actual = [category.value for category in detection.categories]
    return {
        "id": case.get("id", ""),
        "message": message,
        "expected": expected,
        "actual": actual,
        "source": detection.source,
        "ok": actual == expected,
        "latency_sec": round(elapsed, 3),
    }


async def _run(cases: list[dict], classifier: IntentClassifier) -> list[dict]:
    results = []
    for case in cases:
        try:
            result = await _evaluate_case(classifier, case)
        except Exception as exc:
            result = {
                "id": case.get("id", ""),
                "message": case.get("message", ""),
                "expected": case.get("expect", []),
                "actual": None,
                "source": "error",
                "ok": False,
                "error": str(exc),
            }
        results.append(result)
    return results


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Evaluate keyword / classifier intent routing against a case file."
    )
    parser.add_argument(
        "--cases",
        default=str(ROOT / "tests" / "intent_routing_cases.jsonl"),
        help="Path to .jsonl/.json test cases.",
    )
    parser.add_argument(
        "--with-classifier",
        action="store_true",
        help="Fall back to the remote classifier when no keyword matches.",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit non-zero if any case fails.",
    )
    args = parser.parse_args()

    cases = _load_cases(Path(args.cases))
    if not cases:
        print("No cases found.")
        return 1

    client = None
    if args.with_classifier:
        cfg = get_config()
        client = ClassifierClient(
            cfg.intent_classification_url, timeout=cfg.classifier_timeout_seconds
        )
    results = asyncio.run(_run(cases, IntentClassifier(client)))

    passed = sum(1 for r in results if r.get("ok"))
    failed = len(results) - passed

    for result in results:
        status = "PASS" if result.get("ok") else "FAIL"
        print(
            f"[{status}] {result.get('id')} "
            f"expected={result.get('expected')} "
            f"actual={result.get('actual')} "
            f"source={result.get('source')} "
            f"latency={result.get('latency_sec', '-')}"
        )
        if result.get("error"):
            print(f"  error={result.get('error')}")

    print(f"\nTotal: {len(results)}  Passed: {passed}  Failed: {failed}")
    if args.strict and failed:
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
