"""
Usage Ledger

Per-user counters for free-question consumption and premium entitlement.

Invariants:
- free_questions_used never passes the free limit while is_premium is False
- is_premium only ever goes False -> True (apply_payment is the only path)
"""
from __future__ import annotations

from typing import Optional

from chatastro.logger import logger
from chatastro.stores.memory import InMemoryStore, KeyValueStore
from chatastro.utils.models import Plan, UsageState, utcnow


class UsageLedger:
    def __init__(self, store: Optional[KeyValueStore] = None, free_question_limit: int = 10):
        self.store = store if store is not None else InMemoryStore("usage")
        self.free_question_limit = free_question_limit

    def get(self, user_id: str) -> UsageState:
        """Return the user's usage state, creating zeroed defaults if absent."""
        state = self.store.get(user_id)
        if state is None:
            state = UsageState(user_id=user_id)
            self.store.set(user_id, state)
        return state.model_copy()

    def save(self, state: UsageState) -> None:
        self.store.set(state.user_id, state)

    def has_free_quota(self, state: UsageState) -> bool:
        return state.is_premium or state.free_questions_used < self.free_question_limit

    def remaining_free_questions(self, state: UsageState) -> int:
        return max(self.free_question_limit - state.free_questions_used, 0)

    def record_free_question(self, state: UsageState) -> UsageState:
        """Count one free question; premium users are never charged."""
        if state.is_premium:
            return state
        if state.free_questions_used >= self.free_question_limit:
            raise ValueError("free question limit already reached")
        return state.model_copy(update={"free_questions_used": state.free_questions_used + 1})

    @staticmethod
    def mark_overview_received(state: UsageState) -> UsageState:
        return state.model_copy(update={"has_received_overview": True})

    @staticmethod
    def record_question(state: UsageState) -> UsageState:
        return state.model_copy(update={"total_questions": state.total_questions + 1})

    def apply_payment(self, user_id: str, plan_type: str, plan: Plan, payment_id: str) -> UsageState:
        """
        Grant the premium entitlement bought with `payment_id`.

        Re-applying any payment id this user has already been granted changes
        nothing, so replaying an older verification cannot overwrite a newer plan.
        """
        state = self.get(user_id)
        if payment_id in state.applied_payment_ids:
            logger.info("entitlement_already_applied", user_id=user_id, payment_id=payment_id)
            return state

        state = state.model_copy(update={
            "is_premium": True,
            "plan_type": plan_type,
            "total_questions": plan.questions,
            "remaining_questions": plan.questions,
            "purchase_date": utcnow(),
            "payment_id": payment_id,
            "applied_payment_ids": [*state.applied_payment_ids, payment_id],
        })
        self.save(state)
        logger.info(
            "entitlement_granted",
            user_id=user_id,
            plan_type=plan_type,
            questions=plan.questions,
        )
        return state

    def __len__(self) -> int:
        return len(self.store)
