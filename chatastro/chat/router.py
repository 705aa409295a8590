from __future__ import annotations

from fastapi import APIRouter, Depends

from chatastro.dependencies import Services, get_services
from chatastro.exceptions import ValidationError
from chatastro.utils.models import ChatMessageRequest, now_ms

router = APIRouter(prefix="/api", tags=["chat"])


@router.post(
    "/chat/message",
    summary="Send a chat message",
    description="""
Ask the astrologer a question.

- The first general overview request ("give me a general reading") is free.
- Every other question spends one free question until the free limit is hit;
  after that the endpoint answers **402** with `requires_payment: true`
  until a plan is purchased.
    """,
    responses={
        402: {"description": "Free question limit reached"},
        404: {"description": "Unknown user"},
        502: {"description": "Generation provider failed"},
    },
)
async def send_message(payload: ChatMessageRequest, services: Services = Depends(get_services)) -> dict:
    if not payload.user_id or not payload.session_id or not payload.message:
        raise ValidationError("Missing required fields: userId, sessionId, and message are required")

    reply = await services.engine.handle_message(payload.user_id, payload.session_id, payload.message)
    usage = reply.usage
    return {
        "success": True,
        "response": reply.response,
        "timestamp": reply.timestamp,
        "sessionId": reply.session_id,
        "classification": {
            "intent": reply.classification.intent,
            "confidence": reply.classification.confidence,
            "isGeneralOverview": reply.classification.is_general_overview,
        },
        "userState": {
            "freeQuestionsUsed": usage.free_questions_used,
            "isPremium": usage.is_premium,
            "hasReceivedOverview": usage.has_received_overview,
        },
    }


@router.get("/session/{session_id}", summary="Get session history")
async def get_session(session_id: str, services: Services = Depends(get_services)) -> dict:
    session = services.engine.get_session(session_id)
    return {
        "success": True,
        "session": {
            "messages": [message.model_dump() for message in session.messages],
            "messageCount": len(session.messages),
            "queryCount": session.query_count,
            "startTime": session.start_time,
            "lastActivity": session.last_activity,
            "duration": now_ms() - session.start_time,
        },
    }
