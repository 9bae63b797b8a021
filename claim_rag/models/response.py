"""Structured result models for pipeline runs and LLM outputs."""

import json
import re
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from claim_rag.models.document import RankedContext

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


class ClaimDecision(BaseModel):
    """Claim decision payload embedded in the synthesizer's answer text."""

    model_config = ConfigDict(populate_by_name=True)

    decision: str = Field(alias="Decision", description="Approved or Rejected")
    amount: Optional[float] = Field(
        default=None, alias="Amount", description="Payable amount, if any"
    )
    justification: str = Field(
        default="", alias="Justification",
        description="Reasoning that references the policy clauses",
    )

    @classmethod
    def from_text(cls, text: str) -> Optional["ClaimDecision"]:
        """
        Extract a decision from raw model output.

        The model is asked for a JSON object but may wrap it in prose or a
        markdown fence, so the outermost brace pair is parsed.

        Args:
            text: Answer text returned by the synthesizer.

        Returns:
            Parsed decision, or None if the text holds no valid decision.
        """
        match = _JSON_OBJECT.search(text or "")
        if not match:
            return None
        try:
            return cls.model_validate(json.loads(match.group(0)))
        except (json.JSONDecodeError, ValidationError):
            return None


class PipelineResult(BaseModel):
    """Typed outcome of one claim pipeline run."""

    request_id: str
    question: str
    rewritten_query: str
    answer: str
    context: RankedContext
    stages: List[str]
    timings: Dict[str, float] = Field(default_factory=dict)
    chunk_count: int = 0
