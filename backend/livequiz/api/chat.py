from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, HTTPException
from pydantic import ValidationError

from livequiz.runtime import runtime
from livequiz.schemas.chat import chat_event_adapter

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


@router.post("/api/chat/events")
async def push_chat_event(payload: dict[str, Any] = Body(...)) -> dict[str, object]:
    try:
        event = chat_event_adapter.validate_python(payload)
    except ValidationError as exc:
        logger.debug("chat event rejected errors=%s", exc.error_count())
        raise HTTPException(
            status_code=422,
            detail=exc.errors(include_url=False, include_context=False, include_input=False),
        ) from exc

    outcome = await runtime.handle_chat_event(event)
    return {
        "ok": True,
        "active": runtime.session is not None,
        "scored": bool(outcome and outcome.accepted),
        "correct": bool(outcome and outcome.correct),
        "reason": outcome.reason if outcome is not None and not outcome.accepted else None,
    }
