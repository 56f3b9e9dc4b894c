# agents/writer_agent.py
import json
from typing import Any, List, Optional, Union

from pydantic import BaseModel, Field, StrictFloat, StrictInt, StrictStr, ValidationError, field_validator

from errors import NarrativeParseError
from models import HunkRef, LineAnchor, Narrative, WalkthroughStep


# ---------------------------------------------------------------------------
# Response schemas. Every required key is checked before a Narrative is built.
# ---------------------------------------------------------------------------

class _HunkRefPayload(BaseModel):
    file: StrictStr
    hunk_index: StrictInt


class _AnchorPayload(BaseModel):
    file: StrictStr
    start_line: StrictInt
    end_line: StrictInt


class _StepPayload(BaseModel):
    title: StrictStr
    explanation: StrictStr
    hunks: List[_HunkRefPayload] = Field(default_factory=list)


class _AnchoredStepPayload(BaseModel):
    title: StrictStr
    explanation: StrictStr
    anchors: List[_AnchorPayload]


class _WalkthroughPayload(BaseModel):
    overview: StrictStr
    steps: List[_StepPayload]


class _CodeWalkthroughPayload(BaseModel):
    overview: StrictStr
    steps: List[_AnchoredStepPayload]


class _AnalysisItemPayload(BaseModel):
    file: StrictStr
    hunk_index: StrictInt
    confidence: Union[StrictInt, StrictFloat]
    category: StrictStr
    context: Optional[StrictStr] = None
    summary: Optional[StrictStr] = None

    @field_validator("confidence")
    @classmethod
    def confidence_in_range(cls, value):
        if not 1 <= value <= 5:
            raise ValueError("must be between 1 and 5")
        return value


class _AnalysisPayload(BaseModel):
    goal: StrictStr
    hunk_order: List[_AnalysisItemPayload]
    confidence: Any = None
    confidence_reason: Any = None
    removed_abstractions: Any = None
    new_abstractions: Any = None


def _extract_json_from_text(text: str) -> Any:
    """
    Try multiple ways to extract a JSON object from model text:
    1. Direct json.loads(text)
    2. Find first '{' and last '}' and parse that substring
    Raises NarrativeParseError when neither works.
    """
    # 1) direct
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        pass

    # 2) outermost object, skipping markdown fences or chatter around it
    start = text.find('{')
    end = text.rfind('}')
    if start == -1 or end == -1 or end <= start:
        raise NarrativeParseError("No JSON object found in response")
    try:
        return json.loads(text[start:end + 1])
    except ValueError as e:
        raise NarrativeParseError(f"Failed to parse JSON: {e}") from e


def _validate(schema, data: Any):
    if not isinstance(data, dict):
        raise NarrativeParseError("Response JSON is not an object")
    try:
        return schema.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(part) for part in first["loc"]) or "<root>"
        raise NarrativeParseError(f"{where}: {first['msg']}") from e


def _strings(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str)]


def parse_walkthrough(output: str) -> Narrative:
    """Parse a diff walkthrough response (steps cite hunks)."""
    payload = _validate(_WalkthroughPayload, _extract_json_from_text(output))
    steps = [
        WalkthroughStep(
            title=s.title,
            explanation=s.explanation,
            hunks=[HunkRef(file=h.file, hunk_index=h.hunk_index) for h in s.hunks],
        )
        for s in payload.steps
    ]
    return Narrative(kind="walkthrough", overview=payload.overview, steps=steps)


def parse_code_walkthrough(output: str) -> Narrative:
    """Parse a free-form walkthrough response (steps cite line ranges)."""
    payload = _validate(_CodeWalkthroughPayload, _extract_json_from_text(output))
    steps = [
        WalkthroughStep(
            title=s.title,
            explanation=s.explanation,
            anchors=[LineAnchor(file=a.file, start_line=a.start_line, end_line=a.end_line) for a in s.anchors],
        )
        for s in payload.steps
    ]
    return Narrative(kind="walkthrough", overview=payload.overview, steps=steps)


def parse_analysis(output: str) -> Narrative:
    """Parse an analysis response; each `hunk_order` entry becomes one step."""
    payload = _validate(_AnalysisPayload, _extract_json_from_text(output))

    # PR-level confidence is optional; anything outside 1-5 is ignored
    confidence = None
    confidence_reason = None
    if isinstance(payload.confidence, (int, float)) and not isinstance(payload.confidence, bool) \
            and 1 <= payload.confidence <= 5:
        confidence = round(payload.confidence)
        if isinstance(payload.confidence_reason, str):
            confidence_reason = payload.confidence_reason

    steps = []
    for item in payload.hunk_order:
        steps.append(WalkthroughStep(
            title=f"{item.category}: {item.file}",
            explanation=item.context or item.summary or "",
            hunks=[HunkRef(file=item.file, hunk_index=item.hunk_index)],
            category=item.category,
            confidence=round(item.confidence),
        ))

    return Narrative(
        kind="analysis",
        overview=payload.goal,
        steps=steps,
        confidence=confidence,
        confidence_reason=confidence_reason,
        removed_abstractions=_strings(payload.removed_abstractions),
        new_abstractions=_strings(payload.new_abstractions),
    )
