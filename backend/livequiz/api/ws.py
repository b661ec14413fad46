from __future__ import annotations

from fastapi import APIRouter, WebSocket

from livequiz.runtime import runtime

router = APIRouter(tags=["websocket"])


@router.websocket("/api/ws/display")
async def display_websocket(ws: WebSocket) -> None:
    await runtime.handle_display_websocket(ws)


@router.websocket("/ws")
async def display_websocket_compat(ws: WebSocket) -> None:
    await runtime.handle_display_websocket(ws)


@router.websocket("/api/ws/chat")
async def chat_websocket(ws: WebSocket) -> None:
    await runtime.handle_chat_websocket(ws)
