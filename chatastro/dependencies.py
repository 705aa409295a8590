"""
Service wiring.

Every service is built once per process and hung on `app.state.services`.
Route handlers receive it through the `get_services` dependency, so tests can
swap in instances with mocked collaborators.
"""
from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from chatastro.config import Settings, get_settings
from chatastro.services.astrology_service import AstrologyDataService
from chatastro.services.context_composer import ContextComposer
from chatastro.services.conversation_engine import ConversationEngine
from chatastro.services.data_cache import DataCache
from chatastro.services.generation_service import GenerationService
from chatastro.services.geocoding_service import GeocodingService
from chatastro.services.payment_gateway import PaymentGateway
from chatastro.services.payment_service import PaymentService
from chatastro.services.profile_service import ProfileService
from chatastro.services.response_policy import ResponsePolicy
from chatastro.services.usage_ledger import UsageLedger


@dataclass
class Services:
    settings: Settings
    profiles: ProfileService
    engine: ConversationEngine
    payments: PaymentService


def build_services(settings: Settings) -> Services:
    policy = ResponsePolicy.from_override(settings.current_year_override)
    ledger = UsageLedger(free_question_limit=settings.free_question_limit)
    profiles = ProfileService(GeocodingService(settings), ledger)
    engine = ConversationEngine(
        settings=settings,
        profiles=profiles,
        ledger=ledger,
        cache=DataCache(expiry_ms=settings.cache_expiry_ms),
        composer=ContextComposer(
            policy,
            history_lines=settings.context_history_lines,
            payload_char_limit=settings.context_payload_char_limit,
        ),
        generator=GenerationService(settings, policy),
        astrology=AstrologyDataService(settings),
        policy=policy,
    )
    payments = PaymentService(settings, gateway=PaymentGateway(settings))
    return Services(settings=settings, profiles=profiles, engine=engine, payments=payments)


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        services = build_services(get_settings())
        request.app.state.services = services
    return services
