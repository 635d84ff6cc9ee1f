"""WebSocket real-time notifications using Socket.IO."""

import socketio
import logging
from typing import Dict, Set

from app.auth import decode_access_token

logger = logging.getLogger(__name__)

# Create Socket.IO async server
sio = socketio.AsyncServer(
    async_mode='asgi',
    cors_allowed_origins='*',
    logger=False,
    engineio_logger=False
)

# Socket.IO ASGI app
socket_app = socketio.ASGIApp(
    sio,
    socketio_path='/socket.io'
)

# Track active connections by user
active_connections: Dict[str, Set[str]] = {}


def user_room(user_id: str) -> str:
    return f'user_{user_id}'


def get_socket_app():
    """Get the Socket.IO ASGI app for mounting."""
    return socket_app


# Socket.IO Event Handlers

@sio.event
async def connect(sid, environ):
    """Handle client connection."""
    logger.info(f"Client connected: {sid}")
    await sio.emit('connected', {
        'message': 'Connected to Sales CRM',
        'sid': sid
    }, room=sid)


@sio.event
async def disconnect(sid):
    """Handle client disconnection."""
    logger.info(f"Client disconnected: {sid}")

    for user_id, sids in list(active_connections.items()):
        if sid in sids:
            sids.remove(sid)
            if not sids:
                del active_connections[user_id]


@sio.event
async def join(sid, data):
    """
    Join the caller's personal room.

    The client sends its access token; the room is derived from the token's
    subject so a socket can only ever listen to its own notifications.
    """
    token = (data or {}).get('token')
    user_id = decode_access_token(token) if token else None

    if not user_id:
        await sio.emit('error', {
            'message': 'A valid token is required'
        }, room=sid)
        return

    await sio.enter_room(sid, user_room(user_id))

    active_connections.setdefault(user_id, set()).add(sid)

    logger.info(f"Client {sid} joined room for user {user_id}")

    await sio.emit('joined', {
        'user_id': user_id,
        'message': 'Subscribed to notifications'
    }, room=sid)


@sio.event
async def ping(sid, data):
    """Handle ping for keepalive."""
    await sio.emit('pong', {
        'timestamp': (data or {}).get('timestamp')
    }, room=sid)


# Notification Helper Functions

async def notify_user(user_id: str, payload: dict):
    """Push a notification payload to every socket the user has open."""
    await sio.emit('notification', payload, room=user_room(user_id))
    logger.info(f"Pushed notification to user {user_id}: {payload.get('type')}")


def get_connection_stats():
    """Get statistics about active connections."""
    return {
        'total_connections': sum(len(sids) for sids in active_connections.values()),
        'users_connected': len(active_connections),
        'connections_by_user': {
            user_id: len(sids)
            for user_id, sids in active_connections.items()
        }
    }
