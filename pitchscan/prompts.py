"""Instruction prompts sent to the multimodal model.

Each detection prompt states the exact JSON reply schema, the coordinate and
confidence conventions, and the referee rule, and forbids any text outside
the JSON object. Output is still validated afterwards; the prompt is the only
constraint placed on the model.
"""

from datetime import datetime, timezone

PLAYER_COUNT_PROMPT = """
Please quickly analyze this football match image and tell me approximately how many players you can see.

Return only a number representing the player count you see. If unclear, estimate a reasonable number.

For example: if you see about 5 players, return "5".
"""


def frame_detection_prompt(timestamp_seconds: float) -> str:
    return f"""
You are an expert football video analyst. Analyze this football match image and identify all players while filtering out referees with maximum precision.

CRITICAL REQUIREMENTS:
1. ONLY identify players wearing team jerseys - DO NOT identify referees
2. Referees typically wear black, yellow, bright green, or other colors clearly different from both team jerseys
3. Provide PRECISE bounding box coordinates for each player:
   - x, y: top-left corner position (percentage 0-100 relative to image)
   - width, height: box dimensions (percentage 0-100 relative to image)
4. Boxes must stay inside the image: x + width <= 100 and y + height <= 100
5. Provide realistic confidence scores between 0 and 1 (typically 0.7-0.95)
6. Identify jersey numbers if clearly visible
7. Determine team affiliation ("home" or "away") based on jersey colors
8. Identify the main jersey color of each team

Return ONLY valid JSON in exactly this format:
{{
  "teamColors": {{"home": "Blue", "away": "Red"}},
  "players": [
    {{
      "id": 1,
      "x": 25.5,
      "y": 35.2,
      "width": 6.8,
      "height": 18.5,
      "confidence": 0.92,
      "jersey": "10",
      "team": "home",
      "teamColor": "Blue",
      "timestamp": {timestamp_seconds:.2f},
      "isReferee": false
    }}
  ]
}}

IMPORTANT: No explanatory text, no markdown, only the JSON object.
"""


VIDEO_DETECTION_PROMPT = """
Carefully analyze this football video and identify the players in it. Reply with a strict JSON object.

Requirements:
1. Identify every clearly visible player (try to find at least 2-8 players), never referees
2. For each player give a bounding box in percentage coordinates (0-100): x, y for the top-left corner, width and height for the size, with x + width <= 100 and y + height <= 100
3. Give a detection confidence between 0 and 1
4. Record the jersey number if visible
5. Assign each player to "home" or "away" from jersey color or position
6. Name the main jersey color of each team
7. Record the timestamp in seconds where the player first appears clearly

Return ONLY JSON in exactly this format, with no other text:
{
  "teamColors": {"home": "Blue", "away": "Red"},
  "players": [
    {
      "id": 1,
      "x": 25,
      "y": 40,
      "width": 7,
      "height": 16,
      "confidence": 0.85,
      "jersey": "10",
      "team": "home",
      "teamColor": "Blue",
      "timestamp": 15.5,
      "isReferee": false
    }
  ]
}
"""


def performance_prompt(player_name: str, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"""
Analyze the performance of the player "{player_name}" in this football video.

Return the data strictly in the following JSON format, without any other text or explanation:

{{
  "matchId": "match_{int(now.timestamp() * 1000)}",
  "date": "{now.isoformat()}",
  "opponent": "Opponent team name or unknown",
  "overall": 85,
  "speed": 88,
  "passing": 82,
  "positioning": 86,
  "touches": 120,
  "distance": 7.5,
  "topSpeed": 23.5,
  "passAccuracy": 87,
  "dominantFoot": {{"right": 70, "left": 30}}
}}

Requirements:
- overall, speed, passing, positioning, passAccuracy: integers from 0 to 100
- touches: positive integer
- distance: decimal (kilometres)
- topSpeed: decimal (km/h)
- dominantFoot: right and left must add up to 100

Return only JSON, nothing else.
"""
