"""
Pytest configuration and fixtures for ChatAstro tests.

Every external collaborator (geocoding, astrology data, LLM, payment gateway)
is replaced with an AsyncMock; nothing here touches the network.
"""

import os
from datetime import date
from typing import Generator
from unittest.mock import AsyncMock, MagicMock

import pytest
from dotenv import load_dotenv
from fastapi.testclient import TestClient

load_dotenv()

# Set test environment
os.environ["ENVIRONMENT"] = "development"
os.environ["CORS_ORIGINS"] = "*"

from chatastro.config import Settings
from chatastro.dependencies import Services
from chatastro.main import app
from chatastro.services.astrology_service import AstrologyDataService
from chatastro.services.context_composer import ContextComposer
from chatastro.services.conversation_engine import ConversationEngine
from chatastro.services.data_cache import DataCache
from chatastro.services.generation_service import GenerationService
from chatastro.services.geocoding_service import GeocodingService
from chatastro.services.payment_gateway import PaymentGateway
from chatastro.services.payment_service import PaymentService, payment_signature
from chatastro.services.profile_service import ProfileService
from chatastro.services.response_policy import ResponsePolicy
from chatastro.services.usage_ledger import UsageLedger
from chatastro.utils.models import BirthData, Coordinates, Gender, UserProfile

TEST_KEY_SECRET = "test-key-secret"
TEST_WEBHOOK_SECRET = "test-webhook-secret"

ASTRO_PAYLOAD = {
    "basic-astro-details": {"success": 1, "data": {"ascendant": "Leo", "moon_sign": "Cancer"}},
    "planetary-positions": {"success": 1, "data": {"sun": {"sign": "Virgo", "house": 2}}},
}


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        _env_file=None,
        environment="development",
        cors_origins="*",
        opencage_api_key="test-opencage",
        divine_api_key="test-divine",
        divine_auth_token="test-divine-token",
        openai_api_key="test-openai",
        razorpay_key_id="rzp_test_key",
        razorpay_key_secret=TEST_KEY_SECRET,
        razorpay_webhook_secret=TEST_WEBHOOK_SECRET,
        free_question_limit=10,
        current_year_override=2025,
    )


@pytest.fixture
def policy() -> ResponsePolicy:
    return ResponsePolicy(current_year=2025, today=date(2025, 6, 15))


@pytest.fixture
def mumbai() -> Coordinates:
    return Coordinates(latitude=19.0760, longitude=72.8777, timezone="Asia/Kolkata", city="Mumbai", country="India")


@pytest.fixture
def sample_profile() -> UserProfile:
    birth = BirthData(
        full_name="Asha Rao",
        gender=Gender.female,
        birth_date="1995-08-15",
        birth_time="10:30",
        birth_place="Mumbai",
        day=15,
        month=8,
        year=1995,
        hour=10,
        minute=30,
        latitude=19.0760,
        longitude=72.8777,
        timezone="Asia/Kolkata",
        timezone_offset=5.5,
        city="Mumbai",
        country="India",
    )
    return UserProfile(id="user-1", full_name="Asha Rao", gender=Gender.female, birth_data=birth)


# Mock collaborators
@pytest.fixture
def mock_geocoder(mumbai) -> MagicMock:
    geocoder = MagicMock(spec=GeocodingService)
    geocoder.resolve = AsyncMock(return_value=mumbai)
    return geocoder


@pytest.fixture
def mock_astrology() -> MagicMock:
    astrology = MagicMock(spec=AstrologyDataService)
    astrology.fetch = AsyncMock(return_value=ASTRO_PAYLOAD)
    return astrology


@pytest.fixture
def mock_generator() -> MagicMock:
    generator = MagicMock(spec=GenerationService)
    generator.generate = AsyncMock(return_value="The stars favour you this year ✨")
    return generator


@pytest.fixture
def mock_gateway() -> MagicMock:
    gateway = MagicMock(spec=PaymentGateway)
    gateway.key_id = "rzp_test_key"
    gateway.create_order = AsyncMock(
        return_value={"id": "order_test_1", "amount": 19900, "currency": "INR", "receipt": "receipt_1"}
    )
    return gateway


@pytest.fixture
def ledger(test_settings) -> UsageLedger:
    return UsageLedger(free_question_limit=test_settings.free_question_limit)


@pytest.fixture
def profiles(mock_geocoder, ledger, sample_profile) -> ProfileService:
    service = ProfileService(mock_geocoder, ledger)
    service.users.set(sample_profile.id, sample_profile)
    return service


@pytest.fixture
def engine(test_settings, profiles, ledger, policy, mock_generator, mock_astrology) -> ConversationEngine:
    return ConversationEngine(
        settings=test_settings,
        profiles=profiles,
        ledger=ledger,
        cache=DataCache(expiry_ms=test_settings.cache_expiry_ms),
        composer=ContextComposer(policy),
        generator=mock_generator,
        astrology=mock_astrology,
        policy=policy,
    )


@pytest.fixture
def payment_service(test_settings, mock_gateway) -> PaymentService:
    return PaymentService(test_settings, gateway=mock_gateway)


@pytest.fixture
def sign_payment():
    """Build a valid checkout signature for (order_id, payment_id)."""

    def _sign(order_id: str, payment_id: str) -> str:
        return payment_signature(TEST_KEY_SECRET, order_id, payment_id)

    return _sign


@pytest.fixture
def services(test_settings, profiles, engine, payment_service) -> Services:
    return Services(settings=test_settings, profiles=profiles, engine=engine, payments=payment_service)


@pytest.fixture
def client(services) -> Generator[TestClient, None, None]:
    """Test client wired to services with mocked collaborators."""
    app.state.services = services
    client = TestClient(app)
    yield client
    app.state.services = None
