"""
Context Composer

Renders profile, usage tier, cached astrology data, recent conversation and
the query classification into the single text block handed to the LLM.
Pure text assembly: identical inputs always give identical output.
"""
from __future__ import annotations

import json
from typing import Optional

from chatastro.services.response_policy import ResponsePolicy
from chatastro.utils.models import CacheEntry, Classification, Session, UsageState, UserProfile

INSTRUCTIONS = """IMPORTANT INSTRUCTIONS:
- Provide personalized advice based on the user's birth chart data
- Consider gender-specific interpretations where relevant
- Be warm, compassionate, and encouraging
- Write in flowing paragraphs
- Use emojis thoughtfully for visual appeal
- If this is a general overview, be comprehensive yet concise
- For specific questions, be focused and practical
- Include timing and remedies when relevant"""


class ContextComposer:
    def __init__(
        self,
        policy: ResponsePolicy,
        history_lines: int = 6,
        payload_char_limit: int = 6000,
    ):
        self.policy = policy
        self.history_lines = history_lines
        self.payload_char_limit = payload_char_limit

    def render_payload(self, entry: CacheEntry) -> str:
        if entry.degraded:
            return "Astrology Analysis: unavailable (provider error, answer from general principles)"
        serialized = json.dumps(entry.payload, indent=2, sort_keys=True, default=str)
        if len(serialized) > self.payload_char_limit:
            return f"Astrology Analysis: {len(serialized)} characters omitted; keys listed above"
        return f"Astrology Analysis: {serialized}"

    def render_history(self, session: Optional[Session]) -> str:
        if session is None or not session.context:
            return ""
        lines = session.context.split("\n")
        return "\n".join(lines[-self.history_lines:])

    def compose(
        self,
        profile: UserProfile,
        usage: UsageState,
        session: Optional[Session],
        classification: Classification,
        entry: CacheEntry,
    ) -> str:
        birth = profile.birth_data
        query_number = (session.query_count if session else 0) + 1
        tier = "Premium" if usage.is_premium else "Free"
        data_keys = json.dumps(sorted(entry.payload.keys()))
        query_type = "General Overview" if classification.is_general_overview else "Specific Question"

        sections = [
            self.policy.date_header(),
            "\n".join([
                "User Profile:",
                f"- Name: {profile.full_name}",
                f"- Gender: {profile.gender.value}",
                f"- Birth: {birth.birth_date} at {birth.birth_time}",
                f"- Location: {birth.birth_place}",
                f"- Session: Query #{query_number}",
                f"- User Status: {tier} (Total Questions: {usage.total_questions})",
            ]),
            f"Astrological Data Available: {data_keys}",
            self.render_payload(entry),
            "Conversation History (Last 3 exchanges):\n" + self.render_history(session),
            "\n".join([
                "Query Classification:",
                f"- Intent: {classification.intent}",
                f"- Confidence: {classification.confidence:.2f}",
                f"- APIs Used: {', '.join(classification.required_data)}",
                f"- Type: {query_type}",
            ]),
            INSTRUCTIONS,
        ]
        return "\n\n".join(sections)
