import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from src.core.proposals.ids import new_notification_id
from src.core.proposals.models import Notification, NotificationKind

DEFAULT_NOTIFICATION_TTL_SECONDS = 3.0

NotificationListener = Callable[[Notification], None]

logger = logging.getLogger(__name__)


class NotificationCenter:
    """Holds at most one visible transaction-status notification.

    A newer notification replaces the visible one and cancels its expiry timer.
    Expiry is scheduled on the running event loop when there is one and is
    also enforced lazily by ``current``.
    """

    def __init__(
        self,
        *,
        ttl_seconds: float = DEFAULT_NOTIFICATION_TTL_SECONDS,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._current: Optional[Notification] = None
        self._expiry_handle: Optional[asyncio.TimerHandle] = None
        self._listeners: list[NotificationListener] = []

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    def subscribe(self, listener: NotificationListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, kind: NotificationKind, message: str) -> Notification:
        now = self._clock()
        notification = Notification(
            notification_id=new_notification_id(),
            kind=kind,
            message=message,
            created_at=now,
            expires_at=now + timedelta(seconds=self._ttl_seconds),
        )
        self._cancel_expiry()
        self._current = notification
        self._schedule_expiry(notification.notification_id)
        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception:
                logger.exception("notification.listener_failed")
        return notification

    def current(self) -> Optional[Notification]:
        notification = self._current
        if notification is not None and self._clock() >= notification.expires_at:
            self._expire(notification.notification_id)
            return None
        return notification

    def close(self) -> None:
        self._cancel_expiry()
        self._current = None
        self._listeners.clear()

    def _schedule_expiry(self, notification_id: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._expiry_handle = loop.call_later(self._ttl_seconds, self._expire, notification_id)

    def _cancel_expiry(self) -> None:
        if self._expiry_handle is not None:
            self._expiry_handle.cancel()
            self._expiry_handle = None

    def _expire(self, notification_id: str) -> None:
        if self._current is not None and self._current.notification_id == notification_id:
            self._current = None
            self._cancel_expiry()
