"""
Synthesizer

LLM-based answer generation from retrieved document chunks.

Key principle: answer only from context, for one audience.
- Parent answers focus on the child's program, costs and schedules
- Coach answers focus on business operations and requirements
- When the context does not cover the question, say so verbatim and point
  to the academy's phone number instead of guessing
"""

import logging
from typing import Any, Dict, Iterator, List, Optional

from ..common.audience import Audience
from ..common.errors import GenerationError
from ..common.llm_client import LLMClient, EffortTier
from ..common.llm_utils import parse_question_list

logger = logging.getLogger("huddle.retriever.synthesizer")

NOT_AVAILABLE = (
    "That information is not available in our handbook. "
    "Please contact TSA at (512) 555-8722."
)

AUDIENCE_RULES = {
    Audience.PARENT: (
        "Focus on: child's program, monthly costs ($200/mo), schedules, policies\n"
        "Avoid: business operations, revenue models"
    ),
    Audience.COACH: (
        "Focus on: business operations, revenue ($15k/$4k split), requirements\n"
        "Avoid: parent-specific fees or schedules"
    ),
}

SYSTEM_PROMPT = """You are TSA's assistant answering a {audience}'s question.

AUDIENCE RULES:
{audience_rules}

ANSWER RULES:
- Answer ONLY from the provided context
- Be concise (3-4 sentences unless complex)
- Never mix information between audiences
- If uncertain: "{not_available}"

CRITICAL ACCURACY RULES:
- ALWAYS include specific numbers, dates, times, and prices when mentioned
- For schedule questions: Include BOTH day AND time
- For cost questions: Include ALL fees mentioned (monthly, annual, one-time)
- If information spans multiple context sections, synthesize it completely
- Never say "according to the context" - just state the facts directly"""

FOLLOWUP_PROMPT = """{conversation}Based on this TSA-related exchange:
Question: "{question}"
Answer: "{answer}"

Generate 3 relevant follow-up questions that a {audience} might ask next about TSA.{no_repeat}

Respond with a valid JSON object:
{{"questions": ["...", "...", "..."]}}"""

NO_REPEAT_RULE = " Don't repeat questions that were already asked in the conversation."

# Earlier turns sent to the model, newest kept
MAX_HISTORY_MESSAGES = 10
HISTORY_ROLES = ("user", "assistant")


def build_system_prompt(audience: Audience) -> str:
    if audience not in AUDIENCE_RULES:
        raise ValueError(f"No answer rules for audience {audience.value!r}")
    return SYSTEM_PROMPT.format(
        audience=audience.value,
        audience_rules=AUDIENCE_RULES[audience],
        not_available=NOT_AVAILABLE,
    )


def build_user_content(question: str, contexts: List[str]) -> str:
    """Context block (chunks separated by blank lines) followed by the question"""
    return "Context:\n" + "\n\n".join(contexts) + f"\n\nQuestion: {question}"


def conversation_history(messages: Optional[List[Dict[str, Any]]]) -> List[Dict[str, str]]:
    """
    Earlier turns as {role, content} dicts, oldest first.

    Only user and assistant turns with text are kept, at most the last
    ``MAX_HISTORY_MESSAGES`` of them.
    """
    history = []
    for message in messages or []:
        role = message.get("role")
        content = (message.get("content") or "").strip()
        if role in HISTORY_ROLES and content:
            history.append({"role": role, "content": content})
    return history[-MAX_HISTORY_MESSAGES:]


def build_followup_prompt(
    question: str,
    answer: str,
    audience: Audience,
    history: Optional[List[Dict[str, str]]] = None,
) -> str:
    conversation = ""
    if history:
        lines = "\n".join(f"{m['role']}: {m['content']}" for m in history)
        conversation = f"Previous conversation:\n{lines}\n\n"
    return FOLLOWUP_PROMPT.format(
        conversation=conversation,
        question=question,
        answer=answer,
        audience=audience.value,
        no_repeat=NO_REPEAT_RULE if history else "",
    )


def select_effort(
    chunk_count: int,
    top_confidence: float,
    chunk_count_threshold: int = 3,
    confidence_threshold: float = 0.6,
) -> EffortTier:
    """Advanced model when context is broad or weakly matched"""
    if chunk_count > chunk_count_threshold or top_confidence < confidence_threshold:
        return EffortTier.ADVANCED
    return EffortTier.FAST


class Synthesizer:
    """
    Generates audience-scoped answers from retrieved context.

    Unlike a fallback, a failure here means retrieval found something
    relevant, so errors surface as GenerationError for the caller to retry.
    """

    def __init__(self, llm_client: LLMClient, max_tokens: int = 1024):
        self._llm = llm_client
        self._max_tokens = max_tokens

    @property
    def has_llm(self) -> bool:
        return self._llm is not None and self._llm.is_available

    def model_for(self, effort: EffortTier) -> str:
        return self._llm.model_for(effort) if self._llm is not None else ""

    def synthesize(
        self,
        question: str,
        contexts: List[str],
        audience: Audience,
        effort: EffortTier = EffortTier.FAST,
        history: Optional[List[Dict[str, str]]] = None,
    ) -> str:
        """
        Generate a complete answer.

        Raises:
            GenerationError: LLM unavailable, failed, or returned nothing
        """
        model = self.model_for(effort)
        if not self.has_llm:
            raise GenerationError("LLM client is not available", model=model)

        try:
            text = self._llm.generate(
                build_user_content(question, contexts),
                system=build_system_prompt(audience),
                history=history or None,
                effort=effort,
                max_tokens=self._max_tokens,
            )
        except Exception as e:
            logger.error("Answer generation failed (%s): %s", model, e)
            raise GenerationError(str(e), model=model) from e

        if not text or not text.strip():
            raise GenerationError("LLM returned an empty answer", model=model)
        return text.strip()

    def stream(
        self,
        question: str,
        contexts: List[str],
        audience: Audience,
        effort: EffortTier = EffortTier.FAST,
        history: Optional[List[Dict[str, str]]] = None,
    ) -> Iterator[str]:
        """
        Yield answer text incrementally.

        Raises:
            GenerationError: before the first delta if the LLM is unavailable,
                or mid-stream if the provider fails
        """
        model = self.model_for(effort)
        if not self.has_llm:
            raise GenerationError("LLM client is not available", model=model)

        produced = False
        try:
            for delta in self._llm.stream(
                build_user_content(question, contexts),
                system=build_system_prompt(audience),
                history=history or None,
                effort=effort,
                max_tokens=self._max_tokens,
            ):
                produced = True
                yield delta
        except GenerationError:
            raise
        except Exception as e:
            logger.error("Answer streaming failed (%s): %s", model, e)
            raise GenerationError(str(e), model=model) from e

        if not produced:
            raise GenerationError("LLM returned an empty answer", model=model)

    def suggest_followups(
        self,
        question: str,
        answer: str,
        audience: Audience,
        history: Optional[List[Dict[str, str]]] = None,
    ) -> List[str]:
        """Three follow-up questions, or an empty list on any failure"""
        if not self.has_llm:
            return []

        prompt = build_followup_prompt(question, answer, audience, history)
        try:
            raw = self._llm.generate(prompt, effort=EffortTier.FAST, max_tokens=256)
        except Exception as e:
            logger.warning("Follow-up generation failed: %s", e)
            return []

        questions = parse_question_list(raw, expected=3)
        if not questions:
            logger.debug("Follow-up response did not contain 3 questions: %r", raw[:200])
        return questions
