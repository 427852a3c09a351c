"""Deterministic synthetic results used when every inference attempt failed.

The payloads are raw model-shaped dicts so they pass through the same
normalizers as real replies.
"""

import random
import zlib
from datetime import datetime, timezone
from typing import Any

# id, x, y, width, height, confidence, jersey, team
_FALLBACK_PLAYERS = [
    (1, 20, 25, 7, 16, 0.65, "10", "home"),
    (2, 75, 35, 6, 15, 0.64, "7", "away"),
    (3, 45, 20, 7, 17, 0.62, "9", "home"),
    (4, 65, 55, 6, 14, 0.63, "11", "away"),
    (5, 30, 60, 7, 16, 0.61, "8", "home"),
    (6, 85, 15, 6, 15, 0.62, "3", "away"),
]

FALLBACK_TEAM_COLORS = {"home": "Blue", "away": "Red"}


def fallback_detection_payload(timestamp_seconds: float = 0.0) -> dict[str, Any]:
    """Six plausible, spread-out players, identical on every call."""
    return {
        "teamColors": dict(FALLBACK_TEAM_COLORS),
        "players": [
            {
                "id": player_id,
                "x": x,
                "y": y,
                "width": width,
                "height": height,
                "confidence": confidence,
                "jersey": jersey,
                "team": team,
                "teamColor": FALLBACK_TEAM_COLORS[team],
                "timestamp": timestamp_seconds,
                "isReferee": False,
            }
            for player_id, x, y, width, height, confidence, jersey, team in _FALLBACK_PLAYERS
        ],
    }


def fallback_performance_payload(player_name: str, now: datetime | None = None) -> dict[str, Any]:
    """Plausible mid-range scores, seeded by the player name."""
    now = now or datetime.now(timezone.utc)
    rng = random.Random(zlib.crc32(player_name.strip().lower().encode("utf-8")))
    base = 70 + rng.randrange(20)
    right = 60 + rng.randrange(30)

    return {
        "matchId": f"match_{int(now.timestamp() * 1000)}",
        "date": now.isoformat(),
        "opponent": "Unknown opponent",
        "overall": base,
        "speed": base + rng.randrange(10) - 5,
        "passing": base + rng.randrange(10) - 5,
        "positioning": base + rng.randrange(10) - 5,
        "touches": 80 + rng.randrange(60),
        "distance": round(6.0 + rng.random() * 3.0, 1),
        "topSpeed": round(20.0 + rng.random() * 8.0, 1),
        "passAccuracy": 75 + rng.randrange(20),
        "dominantFoot": {"right": right, "left": 100 - right},
    }
