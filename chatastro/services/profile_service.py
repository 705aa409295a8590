from __future__ import annotations

import uuid
from typing import Optional, Tuple

from chatastro.exceptions import UserNotFoundError
from chatastro.logger import logger
from chatastro.services.geocoding_service import GeocodingService
from chatastro.services.usage_ledger import UsageLedger
from chatastro.stores.memory import InMemoryStore, KeyValueStore
from chatastro.utils.models import BirthData, ProfileCreate, UserProfile, utcnow
from chatastro.utils.validators import parse_birth_date, parse_birth_time, validate_profile

IST_TIMEZONE = "Asia/Kolkata"
IST_OFFSET = 5.5


def generate_id() -> str:
    return uuid.uuid4().hex


def timezone_offset(timezone: str) -> float:
    return IST_OFFSET if timezone == IST_TIMEZONE else 0.0


class ProfileService:
    def __init__(
        self,
        geocoder: GeocodingService,
        ledger: UsageLedger,
        users: Optional[KeyValueStore] = None,
    ):
        self.geocoder = geocoder
        self.ledger = ledger
        self.users = users if users is not None else InMemoryStore("users")

    async def create_profile(self, data: ProfileCreate) -> Tuple[UserProfile, str]:
        """
        Validate, geocode and store a new user.

        Returns:
            (profile, session_id) where session_id is a fresh id for the
            user's first conversation

        Raises:
            ValidationError: missing or malformed fields
            LocationNotFoundError: birth place could not be resolved
        """
        gender = validate_profile(data)
        year, month, day = parse_birth_date(data.birth_date)
        hour, minute = parse_birth_time(data.birth_time)
        full_name = data.full_name.strip()
        birth_place = data.birth_place.strip()

        coordinates = await self.geocoder.resolve(birth_place)

        birth_data = BirthData(
            full_name=full_name,
            gender=gender,
            birth_date=data.birth_date,
            birth_time=data.birth_time,
            birth_place=birth_place,
            day=day,
            month=month,
            year=year,
            hour=hour,
            minute=minute,
            latitude=coordinates.latitude,
            longitude=coordinates.longitude,
            timezone=coordinates.timezone,
            timezone_offset=timezone_offset(coordinates.timezone),
            city=coordinates.city,
            country=coordinates.country,
        )
        profile = UserProfile(id=generate_id(), full_name=full_name, gender=gender, birth_data=birth_data)
        self.users.set(profile.id, profile)
        self.ledger.get(profile.id)

        logger.info("user_created", user_id=profile.id, gender=gender.value, birth_place=birth_place)
        return profile, generate_id()

    def get_profile(self, user_id: str) -> UserProfile:
        profile = self.users.get(user_id)
        if profile is None:
            raise UserNotFoundError(user_id)
        return profile

    def touch(self, user_id: str) -> None:
        profile = self.users.get(user_id)
        if profile is not None:
            self.users.set(user_id, profile.model_copy(update={"last_active": utcnow()}))

    def __len__(self) -> int:
        return len(self.users)
