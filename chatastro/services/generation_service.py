from __future__ import annotations

from typing import Dict

from langchain_core.prompts import ChatPromptTemplate
from langchain_openai import ChatOpenAI

from chatastro.config import Settings
from chatastro.exceptions import GenerationUnavailableError
from chatastro.logger import logger
from chatastro.services.response_policy import ResponsePolicy

OVERVIEW_MAX_TOKENS = 1500
QUESTION_MAX_TOKENS = 1000

OVERVIEW_SYSTEM = """You are an expert Indian Vedic astrologer providing a comprehensive general overview of someone's birth chart. {year_directive}

{context}

Generate a comprehensive Vedic astrology general overview for the user that covers all major astrological components. Structure the reading as follows:

✨ **Your Cosmic Blueprint**
- Lagna & Moon sign personality
- Key planet positions & strengths
- Important house influences
- Current Dasha period effects
- Natural talents & abilities
- Lucky elements & guidance
- Encouraging cosmic potential

Write as a caring astrologer in 70-80 words. Be warm, specific, and uplifting with emojis. Mention specific planets and houses from their chart.

Write as if you're speaking directly to them, using "you" and "your" throughout."""

QUESTION_SYSTEM = """You are an expert Vedic astrologer with deep knowledge of Indian astrology. Provide personalized, accurate, and compassionate guidance. {year_directive} Never claim that you do not know the current date or year.

{context}

User Question: {message}

Provide a warm, insightful response that:
1. Addresses their specific question directly
2. Uses the astrological data provided in context
3. Offers practical guidance and remedies
4. Maintains a positive and encouraging tone
5. Includes relevant timing if applicable
6. Is written in flowing paragraphs
7. Uses emojis thoughtfully for visual appeal
8. Keeps response length appropriate (100-200 words for specific questions)

Keep the response conversational and easy to understand, avoiding overly technical jargon."""

OVERVIEW_PROMPT = ChatPromptTemplate.from_messages(
    [("system", OVERVIEW_SYSTEM), ("human", "{message}")]
)

QUESTION_PROMPT = ChatPromptTemplate.from_messages(
    [("system", QUESTION_SYSTEM), ("human", "{message}")]
)


class GenerationService:
    """Turns (user text, composed context) into the astrologer's reply."""

    def __init__(self, settings: Settings, policy: ResponsePolicy):
        self.settings = settings
        self.policy = policy
        self._llms: Dict[int, ChatOpenAI] = {}

    def _get_llm(self, max_tokens: int) -> ChatOpenAI:
        llm = self._llms.get(max_tokens)
        if llm is None:
            llm = ChatOpenAI(
                model=self.settings.openai_model,
                temperature=self.settings.generation_temperature,
                api_key=self.settings.openai_api_key,
                max_tokens=max_tokens,
                timeout=self.settings.api_timeout_seconds,
                max_retries=0,
            )
            self._llms[max_tokens] = llm
        return llm

    def build_messages(self, message: str, context: str, is_general_overview: bool):
        prompt = OVERVIEW_PROMPT if is_general_overview else QUESTION_PROMPT
        return prompt.format_messages(
            message=message,
            context=context,
            year_directive=self.policy.year_directive(),
        )

    async def generate(self, message: str, context: str, is_general_overview: bool = False) -> str:
        """
        Raises:
            GenerationUnavailableError: provider call failed or returned no text
        """
        max_tokens = OVERVIEW_MAX_TOKENS if is_general_overview else QUESTION_MAX_TOKENS
        messages = self.build_messages(message, context, is_general_overview)

        logger.info(
            "generation_request",
            prompt_length=len(message),
            context_length=len(context),
            is_general_overview=is_general_overview,
        )
        try:
            response = await self._get_llm(max_tokens).ainvoke(messages)
        except Exception as exc:  # noqa: BLE001
            logger.error("generation_error", error=str(exc))
            raise GenerationUnavailableError(original_error=str(exc)) from exc

        content = getattr(response, "content", None)
        if not isinstance(content, str) or not content.strip():
            logger.error("generation_empty_response")
            raise GenerationUnavailableError("Invalid response format from generation provider")

        logger.info("generation_response", response_length=len(content))
        return content
