from __future__ import annotations

from fastapi import APIRouter, Depends

from chatastro.dependencies import Services, get_services
from chatastro.utils.models import ProfileCreate

router = APIRouter(prefix="/api/user", tags=["users"])


@router.post("/create", summary="Create a user profile")
async def create_user(payload: ProfileCreate, services: Services = Depends(get_services)) -> dict:
    """
    Validate birth details, geocode the birth place and create the user.

    The returned `sessionId` is a fresh id for the user's first conversation.
    """
    profile, session_id = await services.profiles.create_profile(payload)
    return {
        "success": True,
        "user": {
            "id": profile.id,
            "fullName": profile.full_name,
            "gender": profile.gender.value,
            "location": profile.location,
        },
        "sessionId": session_id,
        "message": "User profile created successfully",
    }


@router.get("/{user_id}", summary="Get a user profile and usage")
async def get_user(user_id: str, services: Services = Depends(get_services)) -> dict:
    profile, usage = services.engine.get_user(user_id)
    return {
        "success": True,
        "user": {
            "id": profile.id,
            "fullName": profile.full_name,
            "gender": profile.gender.value,
            "birthPlace": profile.birth_data.birth_place,
            "location": profile.location,
            "createdAt": profile.created_at,
            "lastActive": profile.last_active,
        },
        "userState": usage.model_dump(exclude={"user_id"}),
    }
