"""WebSocket endpoint for live samples and notifications."""

import json

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from api.ws_manager import WebSocketManager

router = APIRouter()


@router.websocket("/ws/live")
async def websocket_live(websocket: WebSocket):
    """
    Real-time WebSocket endpoint.

    Clients connect and optionally send filter preferences:
        {"type": "subscribe", "channels": ["samples", "notifications", "push"]}

    Data is pushed by the NotificationRelay via the WebSocketManager.
    """
    manager: WebSocketManager = websocket.app.state.ws_manager
    await manager.connect(websocket)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "detail": "invalid JSON"})
                continue
            if data.get("type") == "subscribe" and "channels" in data:
                manager.update_filters(websocket, data["channels"])
                await websocket.send_json({"type": "subscribed", "channels": sorted(data["channels"])})
            elif data.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        manager.disconnect(websocket)
