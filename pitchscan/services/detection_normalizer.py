"""Validation and normalization of raw player detections from model output."""

import logging
import math
from dataclasses import dataclass
from typing import Any

from pitchscan.errors import SchemaError
from pitchscan.types import Detection, DetectionResultSet, Team, TeamColors

logger = logging.getLogger(__name__)


def as_number(value: Any) -> float | None:
    """Finite float from a JSON number or numeric string, else None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def _is_referee(raw: dict[str, Any]) -> bool:
    flag = raw.get("isReferee", raw.get("is_referee"))
    if flag is True or (isinstance(flag, str) and flag.strip().lower() == "true"):
        return True
    role = raw.get("role")
    return isinstance(role, str) and role.strip().lower() == "referee"


@dataclass
class NormalizerConfig:
    """Bounds and defaults applied to every raw detection.

    Box dimension bounds describe a plausible player box; coordinates are
    always kept inside the frame on top of these.
    """

    min_confidence: float = 0.6
    default_confidence: float = 0.8
    min_width: float = 4.0
    max_width: float = 20.0
    min_height: float = 10.0
    max_height: float = 30.0
    default_x: float = 50.0
    default_y: float = 50.0
    default_width: float = 7.0
    default_height: float = 16.0
    # Stamp every detection with this time (single-frame mode).
    frame_timestamp: float | None = None
    max_timestamp: float | None = None


def _team_colors(payload: dict[str, Any]) -> TeamColors:
    raw = payload.get("teamColors", payload.get("team_colors"))
    defaults = TeamColors()
    if not isinstance(raw, dict):
        return defaults
    home = raw.get("home")
    away = raw.get("away")
    return TeamColors(
        home=home.strip() if isinstance(home, str) and home.strip() else defaults.home,
        away=away.strip() if isinstance(away, str) and away.strip() else defaults.away,
    )


def _players(payload: Any) -> list[Any]:
    if not isinstance(payload, dict):
        raise SchemaError("AI analysis result is not a JSON object")
    for key in ("players", "detections"):
        if key in payload:
            players = payload[key]
            if not isinstance(players, list):
                raise SchemaError(f"AI analysis result field {key!r} is not a list")
            return players
    raise SchemaError("AI analysis result format error, player data array not found")


class DetectionNormalizer:
    """Turns parsed model JSON into a DetectionResultSet.

    Out-of-range numbers are clamped, never dropped. Elements are dropped only
    when they are referees, are not objects, or fall below the confidence
    threshold.
    """

    def __init__(self, config: NormalizerConfig | None = None) -> None:
        self._config = config or NormalizerConfig()

    @property
    def config(self) -> NormalizerConfig:
        return self._config

    def normalize(self, payload: Any) -> DetectionResultSet:
        """Validate ``payload`` and return the normalized result set.

        Raises:
            SchemaError: If the players/detections array is absent or not a list.
        """
        players = _players(payload)
        team_colors = _team_colors(payload)

        detections: list[Detection] = []
        used_ids: set[int] = set()
        dropped_referees = dropped_low_confidence = dropped_invalid = 0

        for index, raw in enumerate(players):
            if not isinstance(raw, dict):
                dropped_invalid += 1
                continue
            if _is_referee(raw):
                dropped_referees += 1
                continue

            detection = self._normalize_one(raw, index, team_colors, used_ids)
            if detection is None:
                dropped_low_confidence += 1
                continue
            used_ids.add(detection.id)
            detections.append(detection)

        if dropped_referees or dropped_low_confidence or dropped_invalid:
            logger.info(
                f"Normalized {len(detections)}/{len(players)} detections "
                f"(referees={dropped_referees}, low_confidence={dropped_low_confidence}, "
                f"invalid={dropped_invalid})"
            )
        return DetectionResultSet(team_colors=team_colors, detections=detections)

    def _normalize_one(
        self,
        raw: dict[str, Any],
        index: int,
        team_colors: TeamColors,
        used_ids: set[int],
    ) -> Detection | None:
        cfg = self._config
        inferred: set[str] = set()

        def number(key: str, default: float) -> float:
            value = as_number(raw.get(key))
            if value is None:
                inferred.add(key)
                return default
            return value

        confidence = clamp(number("confidence", cfg.default_confidence), 0.0, 1.0)
        if confidence < cfg.min_confidence:
            return None

        width = clamp(number("width", cfg.default_width), max(0.0, cfg.min_width), min(100.0, cfg.max_width))
        height = clamp(number("height", cfg.default_height), max(0.0, cfg.min_height), min(100.0, cfg.max_height))
        x = clamp(number("x", cfg.default_x), 0.0, 100.0 - width)
        y = clamp(number("y", cfg.default_y), 0.0, 100.0 - height)

        if cfg.frame_timestamp is not None:
            timestamp = cfg.frame_timestamp
        else:
            timestamp = max(0.0, number("timestamp", 0.0))
            if cfg.max_timestamp is not None:
                timestamp = min(timestamp, cfg.max_timestamp)

        raw_id = as_number(raw.get("id"))
        if raw_id is not None and raw_id.is_integer() and raw_id > 0 and int(raw_id) not in used_ids:
            detection_id = int(raw_id)
        else:
            inferred.add("id")
            detection_id = index + 1
            if detection_id in used_ids:
                detection_id = max(used_ids) + 1

        jersey = raw.get("jersey", raw.get("jerseyNumber"))
        if isinstance(jersey, bool) or not isinstance(jersey, (str, int)) or not str(jersey).strip():
            inferred.add("jersey")
            jersey = str(index + 1)
        jersey = str(jersey).strip()

        team_value = raw.get("team")
        if isinstance(team_value, str) and team_value.strip().lower() in (Team.HOME.value, Team.AWAY.value):
            team = Team(team_value.strip().lower())
        else:
            inferred.add("team")
            team = Team.HOME if index % 2 == 0 else Team.AWAY

        team_color = raw.get("teamColor", raw.get("team_color"))
        if not isinstance(team_color, str) or not team_color.strip():
            inferred.add("teamColor")
            team_color = team_colors.for_team(team)

        return Detection(
            id=detection_id,
            x=x,
            y=y,
            width=width,
            height=height,
            confidence=confidence,
            team=team,
            team_color=team_color.strip(),
            timestamp_seconds=timestamp,
            jersey_number=jersey,
            is_referee=False,
            inferred_fields=frozenset(inferred),
        )
