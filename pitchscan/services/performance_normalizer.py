"""Validation of per-player performance reports returned by the model."""

from datetime import datetime, timezone
from typing import Any

from pitchscan.errors import SchemaError
from pitchscan.services.detection_normalizer import as_number, clamp
from pitchscan.types import DominantFoot, PerformanceReport

DEFAULT_OPPONENT = "Unknown opponent"

# field -> (lower, upper, default)
_SCORE_FIELDS = {
    "overall": (0, 100, 75),
    "speed": (0, 100, 80),
    "passing": (0, 100, 78),
    "positioning": (0, 100, 82),
    "passAccuracy": (0, 100, 85),
    "touches": (0, 500, 120),
}
_MEASURE_FIELDS = {
    "distance": (0.0, 20.0, 7.5),
    "topSpeed": (0.0, 50.0, 22.5),
}


def _valid_date(value: Any) -> bool:
    if not isinstance(value, str) or not value.strip() or value.strip().lower() == "unknown":
        return False
    try:
        datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return False
    return True


def _dominant_foot(raw: Any, inferred: set[str]) -> DominantFoot:
    raw = raw if isinstance(raw, dict) else {}
    right = as_number(raw.get("right"))
    left = as_number(raw.get("left"))
    if right is None or left is None:
        inferred.add("dominantFoot")
    right = clamp(right if right is not None else 65.0, 0.0, 100.0)
    left = clamp(left if left is not None else 35.0, 0.0, 100.0)

    total = right + left
    if total <= 0:
        inferred.add("dominantFoot")
        return DominantFoot(right=65, left=35)
    right_share = round(right * 100 / total)
    return DominantFoot(right=right_share, left=100 - right_share)


def normalize_performance(payload: Any, now: datetime | None = None) -> PerformanceReport:
    """Clamp and default every field of a raw performance object.

    Raises:
        SchemaError: If ``payload`` is not a JSON object.
    """
    if not isinstance(payload, dict):
        raise SchemaError("AI performance result is not a JSON object")

    now = now or datetime.now(timezone.utc)
    inferred: set[str] = set()

    def bounded(key: str, lower: float, upper: float, default: float) -> float:
        value = as_number(payload.get(key))
        if value is None:
            inferred.add(key)
            value = default
        return clamp(value, lower, upper)

    scores = {key: int(round(bounded(key, *bounds))) for key, bounds in _SCORE_FIELDS.items()}
    measures = {key: round(bounded(key, *bounds), 1) for key, bounds in _MEASURE_FIELDS.items()}

    match_id = payload.get("matchId")
    if not isinstance(match_id, str) or not match_id.strip():
        inferred.add("matchId")
        match_id = f"match_{int(now.timestamp() * 1000)}"

    date = payload.get("date")
    if not _valid_date(date):
        inferred.add("date")
        date = now.isoformat()

    opponent = payload.get("opponent")
    if not isinstance(opponent, str) or not opponent.strip():
        inferred.add("opponent")
        opponent = DEFAULT_OPPONENT

    return PerformanceReport(
        match_id=match_id.strip(),
        date=date.strip(),
        opponent=opponent.strip(),
        overall=scores["overall"],
        speed=scores["speed"],
        passing=scores["passing"],
        positioning=scores["positioning"],
        touches=scores["touches"],
        distance_km=measures["distance"],
        top_speed_kmh=measures["topSpeed"],
        pass_accuracy=scores["passAccuracy"],
        dominant_foot=_dominant_foot(payload.get("dominantFoot"), inferred),
        inferred_fields=frozenset(inferred),
    )
