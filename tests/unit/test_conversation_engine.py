"""
Unit tests for the conversation engine and its monetization gate.
"""

import asyncio

import pytest

from chatastro.exceptions import (
    GenerationFailedError,
    GenerationUnavailableError,
    QuotaExceededError,
    SessionNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from chatastro.services.payment_service import PLANS
from chatastro.utils.models import Order, Payment

USER = "user-1"
SESSION = "session-1"


def make_payment(plan_type="basic", payment_id="pay_1"):
    plan = PLANS[plan_type]
    order = Order(id="order_1", user_id=USER, plan_type=plan_type, plan=plan, amount=plan.price * 100)
    payment = Payment(
        id=payment_id,
        order_id=order.id,
        user_id=USER,
        plan_type=plan_type,
        plan=plan,
        amount=order.amount,
    )
    return order, payment


class TestHandleMessage:
    """Tests for ConversationEngine.handle_message."""

    @pytest.mark.asyncio
    async def test_reply_and_counters(self, engine, mock_generator):
        reply = await engine.handle_message(USER, SESSION, "How is my career?")

        assert reply.response == "The stars favour you this year ✨"
        assert reply.classification.intent == "career"
        assert reply.usage.free_questions_used == 1
        assert reply.usage.total_questions == 1
        mock_generator.generate.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_user(self, engine, mock_generator):
        with pytest.raises(UserNotFoundError):
            await engine.handle_message("nobody", SESSION, "hello")

        mock_generator.generate.assert_not_awaited()

    @pytest.mark.parametrize("text", ["", "   ", "x" * 1001])
    @pytest.mark.asyncio
    async def test_invalid_message_rejected_before_mutation(self, engine, ledger, text):
        with pytest.raises(ValidationError):
            await engine.handle_message(USER, SESSION, text)

        assert ledger.get(USER).free_questions_used == 0
        assert engine.sessions.get(SESSION) is None

    @pytest.mark.asyncio
    async def test_message_at_max_length_accepted(self, engine):
        reply = await engine.handle_message(USER, SESSION, "a" * 1000)
        assert reply.response

    @pytest.mark.asyncio
    async def test_session_created_lazily(self, engine):
        await engine.handle_message(USER, "fresh-session", "hello")

        session = engine.get_session("fresh-session")
        assert session.query_count == 1
        assert session.messages[0].user_text == "hello"

    @pytest.mark.asyncio
    async def test_context_contains_year_directive(self, engine, mock_generator):
        await engine.handle_message(USER, SESSION, "What year is it?")

        message, context, is_overview = mock_generator.generate.await_args.args
        assert message == "What year is it?"
        assert 'answer "2025"' in context
        assert is_overview is False

    @pytest.mark.asyncio
    async def test_reply_is_post_filtered(self, engine, mock_generator):
        mock_generator.generate.return_value = "Big changes arrive in 2024."

        reply = await engine.handle_message(USER, SESSION, "What is coming?")

        assert reply.response == "Big changes arrive in 2025."
        assert engine.get_session(SESSION).messages[0].bot_text == "Big changes arrive in 2025."

    @pytest.mark.asyncio
    async def test_astrology_data_cached_between_messages(self, engine, mock_astrology):
        await engine.handle_message(USER, SESSION, "career?")
        await engine.handle_message(USER, SESSION, "money?")

        assert mock_astrology.fetch.await_count == 1


class TestMonetizationGate:
    """Tests for free quota, overview and premium behaviour."""

    @pytest.mark.asyncio
    async def test_eleventh_question_rejected(self, engine, ledger, mock_generator):
        for i in range(10):
            await engine.handle_message(USER, SESSION, f"question {i}")
        assert ledger.get(USER).free_questions_used == 10
        calls_before = mock_generator.generate.await_count

        with pytest.raises(QuotaExceededError) as exc_info:
            await engine.handle_message(USER, SESSION, "one more")

        assert exc_info.value.status_code == 402
        assert exc_info.value.details["requires_payment"] is True
        assert exc_info.value.details["free_questions_used"] == 10
        assert exc_info.value.details["remaining_free_questions"] == 0
        assert mock_generator.generate.await_count == calls_before
        state = ledger.get(USER)
        assert state.free_questions_used == 10
        assert state.total_questions == 10
        assert engine.get_session(SESSION).query_count == 10

    @pytest.mark.asyncio
    async def test_overview_free_once(self, engine, ledger, mock_generator):
        reply = await engine.handle_message(USER, SESSION, "Give me a general overview")

        assert reply.usage.has_received_overview is True
        assert reply.usage.free_questions_used == 0
        assert mock_generator.generate.await_args.args[2] is True

        reply = await engine.handle_message(USER, SESSION, "Another general overview please")
        assert reply.usage.free_questions_used == 1

    @pytest.mark.asyncio
    async def test_overview_allowed_when_quota_spent(self, engine, ledger):
        ledger.save(ledger.get(USER).model_copy(update={"free_questions_used": 10}))

        reply = await engine.handle_message(USER, SESSION, "general reading")

        assert reply.usage.has_received_overview is True
        assert reply.usage.free_questions_used == 10

    @pytest.mark.asyncio
    async def test_premium_not_charged(self, engine, ledger):
        ledger.save(ledger.get(USER).model_copy(update={"free_questions_used": 10}))
        order, payment = make_payment()
        await engine.apply_payment(USER, order, payment)

        reply = await engine.handle_message(USER, SESSION, "career?")

        assert reply.usage.is_premium is True
        assert reply.usage.free_questions_used == 10
        assert reply.usage.total_questions == 6

    @pytest.mark.asyncio
    async def test_apply_payment_idempotent(self, engine, ledger):
        order, payment = make_payment()

        first = await engine.apply_payment(USER, order, payment)
        second = await engine.apply_payment(USER, order, payment)

        assert first == second
        assert ledger.get(USER).total_questions == 5


class TestGenerationFailure:
    """Tests for the failed generation path."""

    @pytest.mark.asyncio
    async def test_failure_charges_quota_by_default(self, engine, ledger, mock_generator):
        mock_generator.generate.side_effect = GenerationUnavailableError(original_error="boom")

        with pytest.raises(GenerationFailedError) as exc_info:
            await engine.handle_message(USER, SESSION, "career?")

        assert exc_info.value.details["quota_charged"] is True
        state = ledger.get(USER)
        assert state.free_questions_used == 1
        assert state.total_questions == 0
        assert engine.sessions.get(SESSION) is None

    @pytest.mark.asyncio
    async def test_failure_without_charge(self, engine, ledger, mock_generator, test_settings):
        engine.settings = test_settings.model_copy(update={"charge_failed_generations": False})
        mock_generator.generate.side_effect = GenerationUnavailableError()

        with pytest.raises(GenerationFailedError) as exc_info:
            await engine.handle_message(USER, SESSION, "general overview")

        assert exc_info.value.details["quota_charged"] is False
        state = ledger.get(USER)
        assert state.free_questions_used == 0
        assert state.has_received_overview is False

    @pytest.mark.asyncio
    async def test_failure_keeps_existing_session(self, engine, mock_generator):
        await engine.handle_message(USER, SESSION, "first")
        mock_generator.generate.side_effect = GenerationUnavailableError()

        with pytest.raises(GenerationFailedError):
            await engine.handle_message(USER, SESSION, "second")

        session = engine.get_session(SESSION)
        assert session.query_count == 1
        assert len(session.messages) == 1

    @pytest.mark.asyncio
    async def test_provider_data_failure_still_answers(self, engine, mock_astrology):
        mock_astrology.fetch.side_effect = RuntimeError("divine down")

        reply = await engine.handle_message(USER, SESSION, "career?")

        assert reply.response


class TestSessionRetention:
    """Tests for bounded session history."""

    @pytest.mark.asyncio
    async def test_keeps_last_ten_exchanges(self, engine, ledger):
        order, payment = make_payment("premium")
        await engine.apply_payment(USER, order, payment)

        for i in range(15):
            await engine.handle_message(USER, SESSION, f"question {i}")

        session = engine.get_session(SESSION)
        assert len(session.messages) == 10
        assert [m.user_text for m in session.messages] == [f"question {i}" for i in range(5, 15)]
        assert session.query_count == 15
        assert len(session.context.split("\n")) <= 20

    def test_get_unknown_session(self, engine):
        with pytest.raises(SessionNotFoundError):
            engine.get_session("missing")


class TestConcurrency:
    """Tests for per-user serialisation."""

    @pytest.mark.asyncio
    async def test_concurrent_messages_never_exceed_limit(self, engine, ledger, mock_generator):
        async def slow_generate(message, context, is_overview):
            await asyncio.sleep(0.001)
            return "ok"

        mock_generator.generate.side_effect = slow_generate

        results = await asyncio.gather(
            *[engine.handle_message(USER, f"s{i % 3}", f"q {i}") for i in range(15)],
            return_exceptions=True,
        )

        rejected = [r for r in results if isinstance(r, QuotaExceededError)]
        assert len(rejected) == 5
        assert ledger.get(USER).free_questions_used == 10
        assert ledger.get(USER).total_questions == 10


class TestGetUser:
    def test_get_user(self, engine, sample_profile):
        profile, usage = engine.get_user(USER)

        assert profile == sample_profile
        assert usage.user_id == USER

    def test_get_unknown_user(self, engine):
        with pytest.raises(UserNotFoundError):
            engine.get_user("nobody")
