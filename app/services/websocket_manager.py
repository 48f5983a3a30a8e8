from fastapi import WebSocket
from typing import Dict, List, Optional, Set
import asyncio
import json
import logging
from datetime import datetime

logger = logging.getLogger(__name__)

class WebSocketManager:
    def __init__(self):
        # Store active connections by user_id
        self.active_connections: Dict[str, Set[WebSocket]] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def bind_loop(self, loop: asyncio.AbstractEventLoop):
        """Remember the server loop so sync code paths can schedule pushes on it"""
        self._loop = loop

    async def connect(self, websocket: WebSocket, user_id: str):
        """Connect a new WebSocket for a user"""
        # Note: websocket.accept() is called in the endpoint, not here
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        if user_id not in self.active_connections:
            self.active_connections[user_id] = set()

        self.active_connections[user_id].add(websocket)
        logger.info(f"User {user_id} connected. Total connections: {len(self.active_connections[user_id])}")

        # Send welcome message
        await self.send_personal_message(
            {
                "type": "connection",
                "message": "Connected to notification service",
                "timestamp": datetime.now().isoformat()
            },
            websocket
        )

    def disconnect(self, websocket: WebSocket, user_id: str):
        """Disconnect a WebSocket for a user"""
        if user_id in self.active_connections:
            self.active_connections[user_id].discard(websocket)

            # Remove user if no more connections
            if not self.active_connections[user_id]:
                del self.active_connections[user_id]

            logger.info(f"User {user_id} disconnected. Remaining connections: {len(self.active_connections.get(user_id, set()))}")

    async def send_personal_message(self, message: dict, websocket: WebSocket):
        """Send a message to a specific WebSocket connection"""
        try:
            await websocket.send_text(json.dumps(message, default=str))
        except Exception as e:
            logger.error(f"Error sending message to WebSocket: {e}")

    @staticmethod
    def toast_message(toast_type: str, title: str, message: str, data: dict = None) -> dict:
        """Structured toast payload ("success", "error", "warning", "info")"""
        return {
            "type": "toast",
            "toast_type": toast_type,
            "title": title,
            "message": message,
            "timestamp": datetime.now().isoformat(),
            "data": data or {}
        }

    async def send_notification_to_user(self, user_id: str, notification: dict):
        """Send a notification to all connections of a specific user"""
        if user_id not in self.active_connections:
            logger.info(f"User {user_id} not connected, notification will be stored in database")
            return

        message = {
            "type": "notification",
            "data": notification,
            "timestamp": datetime.now().isoformat()
        }

        # Send to all connections of the user
        disconnected_websockets = set()
        for websocket in list(self.active_connections[user_id]):
            try:
                await websocket.send_text(json.dumps(message, default=str))
            except Exception as e:
                logger.error(f"Error sending notification to user {user_id}: {e}")
                disconnected_websockets.add(websocket)

        # Clean up disconnected websockets
        for websocket in disconnected_websockets:
            self.disconnect(websocket, user_id)

    def dispatch_to_user(self, user_id: str, notification: dict) -> bool:
        """Schedule a push from sync code. Returns False when no server loop is available."""
        if self._loop is None or self._loop.is_closed():
            return False
        asyncio.run_coroutine_threadsafe(self.send_notification_to_user(user_id, notification), self._loop)
        return True

    def get_connected_users(self) -> List[str]:
        """Get list of currently connected user IDs"""
        return list(self.active_connections.keys())

    def get_connection_count(self, user_id: str) -> int:
        """Get number of active connections for a user"""
        return len(self.active_connections.get(user_id, set()))

# Global instance
websocket_manager = WebSocketManager()
