from __future__ import annotations

from fastapi import APIRouter

from livequiz.api.chat import router as chat_router
from livequiz.api.system import router as system_router
from livequiz.api.ws import router as ws_router

api_router = APIRouter()
api_router.include_router(system_router)
api_router.include_router(chat_router)
api_router.include_router(ws_router)
