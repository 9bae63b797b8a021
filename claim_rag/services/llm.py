"""OpenAI LLM service for claim decisions and policy answers."""

import logging
from enum import Enum
from typing import Optional

from openai import AsyncOpenAI

from claim_rag.core.config import settings
from claim_rag.core.exceptions import LLMError

logger = logging.getLogger(__name__)


class AnswerMode(str, Enum):
    """What the synthesizer is asked to produce."""

    CLAIM_DECISION = "claim_decision"
    POLICY_QA = "policy_qa"


CLAIM_SYSTEM_PROMPT = """You are an expert assistant for an insurance claim evaluation system.
Base your decision strictly on the provided context from the policy document.
If no relevant information is found, respond with:
"I could not find the answer in the provided document."
Be concise, factual, and avoid speculation.
Always reference specific parts of the document in your justification."""

CLAIM_USER_PROMPT = """You are an insurance claim evaluator.

Context from the policy document:
{context}

User Query:
{query}

Task:
1. Identify key details from the query (age, procedure, location, policy duration).
2. Find relevant clauses from the above context (such as waiting periods or procedure coverage).
3. Decide whether the claim is Approved or Rejected.
4. Return a JSON object:
{{
  "Decision": "Approved/Rejected",
  "Amount": <number or null>,
  "Justification": "Explain clearly, referencing the clause(s) and specific sections from the document."
}}"""

QA_SYSTEM_PROMPT = """Only return the final answer text exactly as instructed.
Do not include reasoning steps, citations, or extra formatting.
If answer not found, use the exact fallback sentence."""

QA_USER_PROMPT = """You are an expert insurance policy analyzer.

Context from the policy document:
{context}

Question:
{query}

Instructions:
1. Provide a clear, concise, self-contained answer in plain language.
2. Do NOT include section numbers, chunk references, or raw policy text unless essential for meaning.
3. If the answer is not in the provided context, respond exactly with:
"{fallback}"
4. Your answer should be a single sentence or short paragraph.
5. Return only the answer text with no extra commentary or formatting."""

CLAIM_FALLBACK_ANSWER = "No response"
QA_FALLBACK_ANSWER = (
    "The specific information is not clearly stated in the provided document sections."
)


class LLMService:
    """Service for generating answers from ranked policy context."""

    def __init__(self, client: Optional[AsyncOpenAI] = None) -> None:
        """
        Initialize the LLM service.

        Args:
            client: OpenAI client; built from settings when omitted.
        """
        self.client = client or AsyncOpenAI(api_key=settings.openai_api_key)
        self.model = settings.llm_model
        self.temperature = settings.llm_temperature
        self.max_tokens = settings.llm_max_tokens

    def _build_messages(
        self, context_text: str, query: str, mode: AnswerMode
    ) -> list[dict]:
        if mode == AnswerMode.POLICY_QA:
            system_prompt = QA_SYSTEM_PROMPT
            user_prompt = QA_USER_PROMPT.format(
                context=context_text, query=query, fallback=QA_FALLBACK_ANSWER
            )
        else:
            system_prompt = CLAIM_SYSTEM_PROMPT
            user_prompt = CLAIM_USER_PROMPT.format(context=context_text, query=query)

        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]

    async def synthesize(
        self,
        context_text: str,
        query: str,
        mode: AnswerMode = AnswerMode.CLAIM_DECISION,
    ) -> str:
        """
        Generate an answer using the LLM.

        The output is returned as opaque text; parsing any decision payload
        is left to the caller.

        Args:
            context_text: Ranked context rendered as text.
            query: Rewritten user query.
            mode: Claim decision or plain policy answer.

        Returns:
            Answer text, or the mode's fallback sentence if the model
            returned nothing.

        Raises:
            LLMError: If response generation fails.
        """
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=self._build_messages(context_text, query, mode),
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except Exception as e:
            raise LLMError(f"Failed to generate response: {str(e)}") from e

        content = ""
        if response.choices:
            content = (response.choices[0].message.content or "").strip()

        if not content:
            logger.warning(f"Empty response from {self.model}, using fallback answer")
            if mode == AnswerMode.POLICY_QA:
                return QA_FALLBACK_ANSWER
            return CLAIM_FALLBACK_ANSWER

        return content
