"""
Run reporting: per-entity log lines, statistics and operator recommendations.

Nothing here affects what is persisted; these are observability artifacts.
"""
import math
from typing import Any, Dict, List, Sequence

from ..models import Candidate

HIGH_QUALITY = 80
MEDIUM_QUALITY = 60
REVIEW_THRESHOLD = 70
HIGH_ERROR_RATE = 20
LARGE_BATCH = 10

EMPTY_HARVEST_RECOMMENDATIONS = [
    "Add/verify provider API keys (Google/HERE/TomTom/FSQ)",
    "Increase sweep radius or H3 resolution",
    "Re-run with higher MAX_EXPANSION_SEEDS",
]


def _round(value: float) -> int:
    return int(math.floor(value + 0.5))


def _percent(part: float, whole: float) -> int:
    return _round(part / whole * 100) if whole else 0


def entity_log_line(city_slug: str, action: str, entity: Candidate) -> str:
    """``slug | ACTION | name | lat,lng | address | phone | website | external_id | R=score``"""
    coords = f"{entity.lat:.6f},{entity.lng:.6f}" if entity.has_coordinates else "-"
    return " | ".join([
        city_slug,
        action.upper(),
        entity.name,
        coords,
        entity.address or "-",
        entity.phone or "-",
        entity.website or "-",
        entity.place_id or entity.osm_key or "-",
        f"R={entity.reliability_score}",
    ])


def search_stats(entities: Sequence[Candidate], processing_seconds: float) -> Dict[str, Any]:
    scores = [e.reliability_score for e in entities]
    return {
        "total_found": len(scores),
        "high_quality": sum(1 for s in scores if s >= HIGH_QUALITY),
        "medium_quality": sum(1 for s in scores if MEDIUM_QUALITY <= s < HIGH_QUALITY),
        "low_quality": sum(1 for s in scores if s < MEDIUM_QUALITY),
        "requires_review": sum(1 for s in scores if s < REVIEW_THRESHOLD),
        "avg_reliability": _round(sum(scores) / len(scores)) if scores else 0,
        "processing_time_seconds": _round(processing_seconds),
    }


def quality_block(actions: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    """Quality distribution over the entities that were written this run."""
    scores = [a.get("reliability", 0) for a in actions]
    return {
        "high_quality": sum(1 for s in scores if s >= REVIEW_THRESHOLD),
        "medium_quality": sum(1 for s in scores if 50 <= s < REVIEW_THRESHOLD),
        "requires_review": sum(1 for a in actions if a.get("requires_review")),
        "with_google_id": sum(1 for a in actions if a.get("google_place_id")),
        "avg_reliability": _round(sum(scores) / len(scores)) if scores else 0,
    }


def completeness(entities: Sequence[Candidate]) -> Dict[str, int]:
    """Share of entities carrying each optional field, in percent."""
    total = len(entities)
    return {
        "phone": _percent(sum(1 for e in entities if e.phone), total),
        "website": _percent(sum(1 for e in entities if e.website), total),
        "opening_hours": _percent(sum(1 for e in entities if e.opening_hours), total),
        "place_id": _percent(sum(1 for e in entities if e.place_id), total),
    }


def coverage_block(before: int, after: int, online: int, processed: int, errors: int) -> Dict[str, Any]:
    return {
        "before": before,
        "after": after,
        "improvement": f"{_percent(after - before, before)}%" if before > 0 else "New data",
        "online_discovered": online,
        "successfully_processed": processed,
        "processing_success": f"{_percent(processed, online)}%",
        "error_rate": f"{_percent(errors, online)}%",
    }


def generate_recommendations(created: int, updated: int, errors: int, online_count: int) -> List[str]:
    recommendations = []
    if created > 0:
        recommendations.append(f"Successfully added {created} new pharmacies to your database")
    if updated > 0:
        recommendations.append(f"Updated {updated} existing pharmacies with fresh data")
    if errors > 0:
        rate = _percent(errors, online_count)
        if rate > HIGH_ERROR_RATE:
            recommendations.append(f"High error rate ({rate}%) - check API quotas and DB schema")
        else:
            recommendations.append(f"Minor processing errors ({errors}) - review error log")
    if online_count == 0:
        recommendations.append("Verify city coordinates and search parameters")
        recommendations.append("Check Google/HERE/TomTom/Foursquare API keys and quotas")
    elif created == 0 and updated == 0:
        recommendations.append("No changes made - database may already be up to date")
    if created + updated > LARGE_BATCH:
        recommendations.append("Large dataset processed - consider quality review")
    return recommendations or ["Sync completed successfully"]


def summary_text(result) -> str:
    """Multi-line run summary for operators."""
    stats = result.search_stats
    lines = [
        f"Harvest {result.run_id} for {result.city_name or result.city_slug}: {result.state.value}",
        f"  online entities: {result.online_count}  existing before: {result.existing_count}",
        f"  created: {result.created}  updated: {result.updated}  errors: {result.errors}",
        f"  quality: high={stats.get('high_quality', 0)} medium={stats.get('medium_quality', 0)} "
        f"low={stats.get('low_quality', 0)} review={stats.get('requires_review', 0)} "
        f"avg={stats.get('avg_reliability', 0)}",
        f"  duration: {result.duration_seconds:.1f}s",
    ]
    for warning in result.warnings:
        lines.append(f"  warning: {warning}")
    for recommendation in result.recommendations:
        lines.append(f"  - {recommendation}")
    return "\n".join(lines)
