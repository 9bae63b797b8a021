"""Rewrites shorthand claim queries into standalone questions."""

import logging
from typing import Optional

from openai import AsyncOpenAI

from claim_rag.core.config import settings
from claim_rag.core.exceptions import LLMError
from claim_rag.monitoring.metrics import query_rewrite_fallbacks_total

logger = logging.getLogger(__name__)

REWRITE_SYSTEM_PROMPT = """You are a query rewriting expert for an insurance claim system.
If the user provides a shorthand query with details like age, gender, procedure, location, or policy duration,
expand it into a complete, standalone insurance-related question.

For example:
"46M, knee surgery, Pune, 3-month policy"
-> "A 46-year-old male with a 3-month-old health insurance policy in Pune needs knee surgery.
Will the expenses be covered under the policy, and what clauses apply?"

Only output the rewritten question."""


class QueryRewriter:
    """Expands claim shorthand before retrieval, falling back to the input."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        enabled: Optional[bool] = None,
    ) -> None:
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)
        self.model = settings.rewrite_model
        self.enabled = settings.query_rewrite_enabled if enabled is None else enabled

    async def _complete(self, question: str) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": REWRITE_SYSTEM_PROMPT},
                    {"role": "user", "content": question},
                ],
                temperature=0.0,
            )
        except Exception as e:
            raise LLMError(f"Failed to rewrite query: {str(e)}") from e

        if not response.choices:
            return ""
        return (response.choices[0].message.content or "").strip()

    async def rewrite(self, question: str) -> str:
        """
        Rewrite a question for retrieval.

        Args:
            question: Raw user question or claim shorthand.

        Returns:
            The rewritten question, or the original question verbatim when
            rewriting is disabled, fails, or yields nothing.
        """
        if not self.enabled:
            return question

        try:
            rewritten = await self._complete(question)
        except LLMError as e:
            logger.warning(f"Query rewrite unavailable, using original question: {e}")
            query_rewrite_fallbacks_total.inc()
            return question

        if not rewritten:
            logger.warning("Query rewrite returned empty text, using original question")
            query_rewrite_fallbacks_total.inc()
            return question

        logger.info(f"Query rewritten: {rewritten[:100]}")
        return rewritten
