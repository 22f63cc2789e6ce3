"""Deep-empathy focus extraction.

A small auxiliary model call picks the most emotionally salient phrase from
the user's message; the phrase is then pinned at the top of the turn context
("keep this close: ...").
"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING

from companion.llm.prompts import FOCUS_ANALYZER_SYSTEM, fill

if TYPE_CHECKING:
    from companion.config import AIConfig
    from companion.llm.client import GenerationClient
    from companion.llm.models import ModelTarget

logger = logging.getLogger(__name__)

ANALYSIS_TEMPERATURE = 0.3

_FOCUS_POINTS_RE = re.compile(r'"focus_points"\s*:\s*\[(.*?)\]', re.DOTALL | re.IGNORECASE)
_STRONG_FLAGS_RE = re.compile(r'"is_strong_focus"\s*:\s*\[(.*?)\]', re.DOTALL | re.IGNORECASE)
_QUOTED_RE = re.compile(r'"((?:[^"\\]|\\.)*)"')
_BOOL_RE = re.compile(r"\b(true|false)\b", re.IGNORECASE)


def _parse_json(body: str) -> tuple[list, list] | None:
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    points = data.get("focus_points")
    flags = data.get("is_strong_focus")
    if not isinstance(points, list) or not isinstance(flags, list):
        return None
    return points, flags


def _parse_regex(body: str) -> tuple[list, list] | None:
    points_match = _FOCUS_POINTS_RE.search(body)
    flags_match = _STRONG_FLAGS_RE.search(body)
    if not points_match or not flags_match:
        return None
    points = [json.loads(f'"{p}"') for p in _QUOTED_RE.findall(points_match.group(1))]
    flags = [f.lower() == "true" for f in _BOOL_RE.findall(flags_match.group(1))]
    return points, flags


def parse_strong_focus(raw: str) -> list[str]:
    """Extract every focus point flagged as strong from a model response.

    Tolerates prose around the JSON object and JSON that does not parse
    (falls back to pattern matching). Anything unusable yields ``[]``.
    """
    start = raw.find("{")
    end = raw.rfind("}")
    if start < 0 or end <= start:
        return []
    body = raw[start : end + 1]

    try:
        parsed = _parse_json(body) or _parse_regex(body)
    except (ValueError, TypeError):
        logger.warning("Failed to parse focus analysis")
        return []
    if parsed is None:
        return []

    points, flags = parsed
    return [
        str(point).strip()
        for point, strong in zip(points, flags, strict=False)
        if strong is True and isinstance(point, str) and point.strip()
    ]


class EmpathyFocusExtractor:
    """Asks the model for the strongest focus point of a user message."""

    def __init__(self, generation: GenerationClient) -> None:
        self._generation = generation

    async def extract(self, text: str, target: ModelTarget, config: AIConfig) -> str:
        """Return the focus phrase (strong points joined by ", "), or ``""``."""
        prompt = fill(config.deep_empathy_analysis_prompt, text=text)
        try:
            raw = await self._generation.complete(
                target,
                [{"role": "user", "content": prompt}],
                system_prompt=FOCUS_ANALYZER_SYSTEM,
                config=config,
                temperature=ANALYSIS_TEMPERATURE,
                history_limit=1,
            )
        except Exception:
            logger.exception("Focus analysis failed (non-fatal)")
            return ""

        focus = ", ".join(parse_strong_focus(raw))
        if focus:
            logger.debug("Dialogue focus: %s", focus)
        return focus

    async def focus_prompt(self, text: str, target: ModelTarget, config: AIConfig) -> str:
        """The "keep this close" context line for *text*, or ``""`` if no focus."""
        focus = await self.extract(text, target, config)
        if not focus:
            return ""
        return fill(config.deep_empathy_prompt, dialogue_focus=focus)
