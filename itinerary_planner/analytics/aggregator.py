from __future__ import annotations

from collections import Counter, defaultdict
from typing import Any


def compute_analytics(events: list[dict[str, Any]]) -> dict[str, Any]:
    requests = [e for e in events if e["type"] == "itinerary_generated"]
    stages = [e for e in events if e["type"] == "pipeline_stage"]
    total = len(requests)

    # Average end-to-end time (cache hits included)
    times = [r["duration_ms"] for r in requests if "duration_ms" in r]
    avg_time = round(sum(times) / len(times), 1) if times else 0.0

    # Average time per stage
    per_stage: dict[str, list[float]] = defaultdict(list)
    for s in stages:
        per_stage[s.get("stage", "unknown")].append(s.get("duration_ms", 0.0))
    stage_durations = {
        name: round(sum(values) / len(values), 1) for name, values in sorted(per_stage.items())
    }

    # Top interests
    interest_counter: Counter[str] = Counter()
    for r in requests:
        for interest in r.get("interests", []) or []:
            interest_counter[interest] += 1
    top_interests = [{"name": n, "count": c} for n, c in interest_counter.most_common(10)]

    # Outcome breakdown
    status_counts = dict(Counter(r.get("status", "unknown") for r in requests))
    fallbacks = sum(1 for r in requests if r.get("reorder_fallback"))

    cache_hits = sum(1 for r in requests if r.get("cache_hit"))
    cache_misses = total - cache_hits

    failures = [e for e in events if e["type"] == "itinerary_failed"]
    failure_kinds = dict(Counter(f.get("kind", "unknown") for f in failures))

    return {
        "total_requests": total,
        "avg_response_time_ms": avg_time,
        "stage_avg_duration_ms": stage_durations,
        "top_interests": top_interests,
        "status_counts": status_counts,
        "reorder_fallback_rate": round(fallbacks / total * 100, 1) if total else 0.0,
        "cache_stats": {
            "hits": cache_hits,
            "misses": cache_misses,
            "hit_rate": round(cache_hits / total * 100, 1) if total else 0.0,
        },
        "failures": {"total": len(failures), "by_kind": failure_kinds},
        "rule_runs": sum(1 for e in events if e["type"] == "rules_generated"),
    }
