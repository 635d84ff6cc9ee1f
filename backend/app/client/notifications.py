"""
Client-side notification feed.

Keeps a local copy of the signed-in user's notifications in step with the
server through two channels: periodic polling of the list and unread-count
endpoints, and a Socket.IO subscription that delivers new notifications as
they are created. Read-state changes are applied locally first and rolled
back if the server does not confirm them.
"""

import asyncio
import logging
from typing import Callable, Dict, List, Optional

import httpx
import socketio
from socketio.exceptions import ConnectionError as SocketConnectionError

from app.config import settings

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1/notifications"


class NotificationError(Exception):
    """A notification call failed for a reason other than authentication."""


class AuthenticationRequired(NotificationError):
    """The server answered 401; the user has to sign in again."""


class NotificationFeed:
    """
    Merged view of polled and pushed notifications for one user session.

    The push connection is opened once per feed and is not re-established if
    it drops; polling keeps the list current in that case.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        poll_interval: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        socket_client: Optional[socketio.AsyncClient] = None,
        on_change: Optional[Callable[["NotificationFeed"], None]] = None,
        on_auth_required: Optional[Callable[[], None]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.poll_interval = poll_interval if poll_interval is not None else settings.NOTIFICATION_POLL_SECONDS
        self.http = http_client or httpx.AsyncClient(base_url=self.base_url, timeout=10.0)
        self.socket = socket_client
        self.on_change = on_change
        self.on_auth_required = on_auth_required

        self.notifications: List[Dict] = []
        self.unread_count = 0
        self._pending_reads = set()
        self._poll_task: Optional[asyncio.Task] = None
        self._push_connected = False

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    async def _request(self, method: str, path: str):
        try:
            response = await self.http.request(method, f"{API_PREFIX}{path}", headers=self._headers)
        except httpx.HTTPError as e:
            raise NotificationError(f"{method} {path} failed: {e}") from e

        if response.status_code == 401:
            raise AuthenticationRequired("Session expired")
        if response.status_code >= 400:
            raise NotificationError(f"{method} {path} returned {response.status_code}")
        return response.json()

    def _changed(self):
        if self.on_change:
            self.on_change(self)

    async def refresh(self):
        """Replace the local list with the server's, keeping unconfirmed local reads."""
        items = await self._request("GET", "")
        count = await self._request("GET", "/unread-count")

        for item in items:
            if item["id"] in self._pending_reads and not item.get("read"):
                item["read"] = True
                count["count"] = max(count["count"] - 1, 0)

        self.notifications = items
        self.unread_count = count["count"]
        self._changed()

    def _find(self, notification_id: int) -> Optional[Dict]:
        for item in self.notifications:
            if item["id"] == notification_id:
                return item
        return None

    async def mark_read(self, notification_id: int):
        """Mark read locally, then confirm. A failed confirmation restores the unread state."""
        item = self._find(notification_id)
        if item is None or item.get("read"):
            return

        item["read"] = True
        self.unread_count = max(self.unread_count - 1, 0)
        self._pending_reads.add(notification_id)
        self._changed()

        try:
            await self._request("PATCH", f"/{notification_id}/read")
        except NotificationError:
            # A refresh may have replaced the list while the call was in flight
            self._restore_unread({notification_id})
            logger.warning(f"Mark-read of notification {notification_id} failed; restored unread state")
            self._changed()
            raise
        finally:
            self._pending_reads.discard(notification_id)

    async def mark_all_read(self):
        listed = self.notifications
        unread_ids = {item["id"] for item in listed if not item.get("read")}
        unlisted_unread = max(self.unread_count - len(unread_ids), 0)

        for item in listed:
            item["read"] = True
        self.unread_count = 0
        self._pending_reads.update(unread_ids)
        self._changed()

        try:
            await self._request("PATCH", "/read-all")
        except NotificationError:
            self._restore_unread(unread_ids)
            # A refreshed unread count already includes notifications outside the list
            if self.notifications is listed:
                self.unread_count += unlisted_unread
            self._changed()
            raise
        finally:
            self._pending_reads.difference_update(unread_ids)

    def _restore_unread(self, notification_ids):
        for item in self.notifications:
            if item["id"] in notification_ids and item.get("read"):
                item["read"] = False
                self.unread_count += 1

    # ------------------------------------------------------------------
    # Push channel
    # ------------------------------------------------------------------

    def handle_push(self, payload: Dict):
        """Prepend a pushed notification unless it is already known."""
        if self._find(payload.get("id")) is not None:
            return
        self.notifications.insert(0, payload)
        if not payload.get("read"):
            self.unread_count += 1
        self._changed()

    async def _on_push(self, payload: Dict):
        self.handle_push(payload)
        try:
            await self.refresh()
        except AuthenticationRequired:
            await self._auth_lost()
        except NotificationError as e:
            logger.warning(f"Refresh after push failed: {e}")

    async def connect_push(self):
        """Open the push subscription once for this feed."""
        if self._push_connected:
            return

        if self.socket is None:
            self.socket = socketio.AsyncClient(reconnection=False)

        async def on_connect():
            await self.socket.emit("join", {"token": self.token})

        self.socket.on("connect", on_connect)
        self.socket.on("notification", self._on_push)

        try:
            await self.socket.connect(self.base_url, socketio_path="socket.io")
            self._push_connected = True
            logger.info("Notification push channel connected")
        except SocketConnectionError as e:
            logger.warning(f"Push channel unavailable, relying on polling: {e}")

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def _auth_lost(self):
        logger.warning("Notification feed lost authentication")
        self.stop_polling()
        if self.on_auth_required:
            self.on_auth_required()

    async def _poll_loop(self):
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.refresh()
            except AuthenticationRequired:
                await self._auth_lost()
                return
            except NotificationError as e:
                logger.warning(f"Notification poll failed: {e}")

    def start_polling(self):
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(self._poll_loop())

    def stop_polling(self):
        if self._poll_task is not None and not self._poll_task.done():
            if self._poll_task is not asyncio.current_task():
                self._poll_task.cancel()
        self._poll_task = None

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def start(self, push: bool = True):
        """Initial load, then polling and (optionally) push."""
        await self.refresh()
        self.start_polling()
        if push:
            await self.connect_push()

    async def close(self):
        self.stop_polling()
        if self.socket is not None and self._push_connected:
            await self.socket.disconnect()
            self._push_connected = False
        await self.http.aclose()
