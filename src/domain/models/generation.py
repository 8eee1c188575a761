"""Response generator result contract."""

import json
import re
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class GenerationResult(BaseModel):
    """Value returned by one generate() call; consumed once per turn."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    message: str = ""
    extracted_data: Optional[Dict[str, Any]] = Field(default=None, alias="data")
    should_advance: bool = Field(default=False, alias="shouldAdvance")
    confidence: int = Field(default=0, description="0..100")
    degraded: bool = Field(
        default=False, description="Produced by the simplified fallback path"
    )

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v: Any) -> int:
        try:
            value = int(round(float(v)))
        except (TypeError, ValueError):
            return 0
        return max(0, min(100, value))

    @field_validator("extracted_data", mode="before")
    @classmethod
    def drop_non_mapping(cls, v: Any) -> Optional[Dict[str, Any]]:
        if isinstance(v, dict) and v:
            return v
        return None

    @field_validator("message", mode="before")
    @classmethod
    def coerce_message(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()


def clean_json_payload(raw: str) -> str:
    """Strip Markdown code fences that some models wrap JSON in."""
    return _CODE_FENCE.sub("", (raw or "").strip()).strip()


def parse_generation_payload(raw: str) -> GenerationResult:
    """Parse a JSON reply body.

    Raises:
        ValueError: If the body is not a JSON object
    """
    payload = json.loads(clean_json_payload(raw))
    if not isinstance(payload, dict):
        raise ValueError("Generation payload is not a JSON object")
    return GenerationResult.model_validate(payload)
