"""
Conversation Engine

Runs one chat exchange end to end: classify, apply the monetization gate,
resolve astrology data, compose context, generate, then commit the exchange.

Monetization gate (per user):
1. First general-overview request is free and flips has_received_overview.
2. Otherwise a non-premium user at the free limit is rejected with
   QuotaExceededError before anything is touched or generated.
3. Otherwise non-premium users spend one free question.

Mutations of one user's usage and one session's log are serialised by
per-user and per-session locks (always taken in that order). Different users
proceed in parallel.
"""
from __future__ import annotations

from typing import Optional, Tuple

from chatastro.config import Settings
from chatastro.exceptions import (
    GenerationFailedError,
    GenerationUnavailableError,
    QuotaExceededError,
    SessionNotFoundError,
    ValidationError,
)
from chatastro.logger import logger
from chatastro.services.astrology_service import AstrologyDataService
from chatastro.services.context_composer import ContextComposer
from chatastro.services.data_cache import DataCache
from chatastro.services.generation_service import GenerationService
from chatastro.services.intent_classifier import classify
from chatastro.services.profile_service import ProfileService
from chatastro.services.response_policy import ResponsePolicy
from chatastro.services.usage_ledger import UsageLedger
from chatastro.stores.memory import InMemoryStore, KeyedLocks, KeyValueStore
from chatastro.utils.models import (
    ChatReply,
    Exchange,
    Order,
    Payment,
    Session,
    UsageState,
    UserProfile,
    now_ms,
)
from chatastro.utils.validators import validate_message


class ConversationEngine:
    def __init__(
        self,
        settings: Settings,
        profiles: ProfileService,
        ledger: UsageLedger,
        cache: DataCache,
        composer: ContextComposer,
        generator: GenerationService,
        astrology: AstrologyDataService,
        policy: ResponsePolicy,
        sessions: Optional[KeyValueStore] = None,
    ):
        self.settings = settings
        self.profiles = profiles
        self.ledger = ledger
        self.cache = cache
        self.composer = composer
        self.generator = generator
        self.astrology = astrology
        self.policy = policy
        self.sessions = sessions if sessions is not None else InMemoryStore("sessions")
        self._user_locks = KeyedLocks()
        self._session_locks = KeyedLocks()

    def append_exchange(self, session: Session, exchange: Exchange) -> Session:
        """Return `session` with `exchange` appended and retention limits applied."""
        messages = (session.messages + [exchange])[-self.settings.session_message_limit:]
        context = f"{session.context}User: {exchange.user_text}\nBot: {exchange.bot_text}\n"
        context = "\n".join(context.split("\n")[-self.settings.session_context_lines:])
        return session.model_copy(update={
            "messages": messages,
            "context": context,
            "query_count": session.query_count + 1,
            "last_activity": exchange.timestamp,
        })

    async def handle_message(self, user_id: str, session_id: str, text: str) -> ChatReply:
        """
        Process one user message and return the generated reply.

        Raises:
            ValidationError: empty or oversized message, missing session id
            UserNotFoundError: user_id is unknown
            QuotaExceededError: free questions exhausted (nothing mutated)
            GenerationFailedError: the LLM call failed (session untouched)
        """
        message = validate_message(text, self.settings.max_message_length)
        if not session_id:
            raise ValidationError("sessionId is required", field="sessionId")
        profile = self.profiles.get_profile(user_id)

        async with self._user_locks.lock(user_id), self._session_locks.lock(session_id):
            usage = self.ledger.get(user_id)
            classification = classify(message)
            charge_on_failure = self.settings.charge_failed_generations

            overview_free = classification.is_general_overview and not usage.has_received_overview
            if overview_free:
                gated = self.ledger.mark_overview_received(usage)
            elif not self.ledger.has_free_quota(usage):
                logger.info(
                    "quota_exceeded",
                    user_id=user_id,
                    free_questions_used=usage.free_questions_used,
                )
                raise QuotaExceededError(
                    usage.free_questions_used,
                    self.ledger.free_question_limit,
                    usage.is_premium,
                    self.ledger.remaining_free_questions(usage),
                )
            else:
                gated = self.ledger.record_free_question(usage)
            quota_spent = gated.free_questions_used != usage.free_questions_used

            if charge_on_failure:
                self.ledger.save(gated)

            logger.info(
                "chat_message_accepted",
                user_id=user_id,
                session_id=session_id,
                intent=classification.intent,
                overview_free=overview_free,
                free_questions_used=gated.free_questions_used,
                is_premium=gated.is_premium,
            )

            session = self.sessions.get(session_id) or Session(id=session_id)
            entry = await self.cache.get_or_refresh(
                user_id,
                classification.required_data,
                profile.birth_data,
                self.astrology.fetch,
            )
            context = self.composer.compose(profile, gated, session, classification, entry)

            try:
                raw = await self.generator.generate(message, context, classification.is_general_overview)
            except GenerationUnavailableError as exc:
                logger.error(
                    "chat_generation_failed",
                    user_id=user_id,
                    session_id=session_id,
                    quota_charged=charge_on_failure and quota_spent,
                    error=exc.message,
                )
                raise GenerationFailedError(
                    original_error=exc.message,
                    quota_charged=charge_on_failure and quota_spent,
                ) from exc

            reply = self.policy.post_filter(raw)
            exchange = Exchange(
                user_text=message,
                bot_text=reply,
                timestamp=now_ms(),
                intent=classification.intent,
                confidence=classification.confidence,
                is_general_overview=classification.is_general_overview,
            )
            session = self.append_exchange(session, exchange)
            committed = self.ledger.record_question(gated)

            self.sessions.set(session_id, session)
            self.ledger.save(committed)
            self.profiles.touch(user_id)

        logger.info(
            "chat_message_answered",
            user_id=user_id,
            session_id=session_id,
            query_count=session.query_count,
            response_length=len(reply),
        )
        return ChatReply(
            response=reply,
            session_id=session_id,
            classification=classification,
            usage=committed,
        )

    async def apply_payment(self, user_id: str, order: Order, payment: Payment) -> UsageState:
        """Grant the entitlement for a verified payment."""
        async with self._user_locks.lock(user_id):
            return self.ledger.apply_payment(user_id, order.plan_type, order.plan, payment.id)

    def get_session(self, session_id: str) -> Session:
        session = self.sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session.model_copy(deep=True)

    def get_user(self, user_id: str) -> Tuple[UserProfile, UsageState]:
        profile = self.profiles.get_profile(user_id)
        return profile, self.ledger.get(user_id)

    def stats(self) -> dict:
        return {
            "users": len(self.profiles),
            "sessions": len(self.sessions),
            "usage_records": len(self.ledger),
            "astro_cache": self.cache.stats()["entries"],
        }
