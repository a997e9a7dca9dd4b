"""Prompt templates for structured scene analysis and prompt-driven operations."""

SCENE_PROMPTS = {
    "queue": """Analyze this retail scene and return a JSON response with:
{
  "people_count": number,
  "queue_formation": "line|cluster|scattered",
  "estimated_wait_minutes": number,
  "crowd_density": "low|medium|high",
  "customer_mood": ["calm", "impatient", "frustrated"],
  "staff_needed": boolean,
  "description": "natural language description"
}""",
    "inventory": """Analyze this retail inventory scene and return JSON:
{
  "products_visible": number,
  "shelf_capacity_used": number (0-100),
  "restocking_needed": boolean,
  "empty_spots": number,
  "product_categories": ["category1", "category2"],
  "organization_quality": "poor|good|excellent",
  "description": "natural language description"
}""",
    "safety": """Analyze this scene for safety concerns and return JSON:
{
  "hazard_detected": boolean,
  "hazard_type": "spill|obstruction|crowd|equipment|none",
  "immediate_action_required": boolean,
  "affected_area": "description of area",
  "severity": "low|medium|high",
  "description": "natural language description"
}""",
}

GENERAL_SCENE_PROMPT = (
    "Describe this retail scene in detail, focusing on people, objects, "
    "activities, and any notable patterns or issues."
)

# Local models have no dedicated caption/detect/point endpoints, so those
# operations are phrased as prompts.
CAPTION_PROMPTS = {
    "short": "Write a one-sentence caption for this image.",
    "normal": "Describe this image in 2-3 sentences.",
    "long": "Describe this image in detail, covering every notable subject, object and activity.",
}

DETECT_PROMPT = """Find every {target} in this image.
Return ONLY JSON in this format, with coordinates as fractions (0-1) of the image size:
{{"objects": [{{"label": "{target}", "confidence": 0.0-1.0, "bbox": {{"x": 0.0, "y": 0.0, "width": 0.0, "height": 0.0}}}}]}}
If there is none, return {{"objects": []}}."""

POINT_PROMPT = """Locate the center of every {target} in this image.
Return ONLY JSON in this format, with coordinates as fractions (0-1) of the image size:
{{"points": [{{"x": 0.0, "y": 0.0}}]}}
If there is none, return {{"points": []}}."""


def scene_prompt(scene_type: str) -> str:
    """Prompt for a scene type; unknown types get a general description prompt."""
    return SCENE_PROMPTS.get(scene_type, GENERAL_SCENE_PROMPT)


def caption_prompt(length: str) -> str:
    return CAPTION_PROMPTS.get(length, CAPTION_PROMPTS["normal"])


def detect_prompt(target: str) -> str:
    return DETECT_PROMPT.format(target=target)


def point_prompt(target: str) -> str:
    return POINT_PROMPT.format(target=target)
