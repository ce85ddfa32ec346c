"""Notification dispatch: deduplicate detected events and fan them out to the user-facing layer."""

import time
from collections import deque
from dataclasses import dataclass
from typing import Callable

import structlog

from config.context import Preferences
from processor.events import Event, Severity

EventSink = Callable[[Event], None]
PlatformNotifier = Callable[[str, str], None]


@dataclass
class Notification:
    event: Event
    read: bool = False

    def to_dict(self) -> dict:
        return {**self.event.to_dict(), "read": self.read}


class NotificationDispatcher:
    """
    Forwards each event at most once per identity per cooldown window.

    Identities are deterministic (kind plus zone/metric or subject), so the
    same condition firing on consecutive ticks is suppressed until the
    cooldown expires. Dispatch times older than the cooldown are pruned on
    every call, keeping the dedup map bounded. Fire alarm and gas leak events
    skip dedup and ignore the push-notification opt-out.
    """

    def __init__(
        self,
        preferences: Preferences,
        log: structlog.BoundLogger,
        platform_notifier: PlatformNotifier | None = None,
        cooldown_sec: float = 300.0,
        visible_limit: int = 5,
        clock: Callable[[], float] = time.time,
    ):
        self.preferences = preferences
        self.log = log
        self._platform_notifier = platform_notifier
        self._cooldown_ms = cooldown_sec * 1000
        self._clock = clock
        self._last_sent: dict[str, float] = {}  # identity -> dispatch time (ms)
        self._visible: deque[Notification] = deque(maxlen=visible_limit)
        self._sinks: list[EventSink] = []
        self._dispatched = 0
        self._suppressed = 0

    def subscribe(self, sink: EventSink) -> Callable[[], None]:
        self._sinks.append(sink)

        def _unsubscribe():
            if sink in self._sinks:
                self._sinks.remove(sink)

        return _unsubscribe

    def _prune(self, now_ms: float):
        cutoff = now_ms - self._cooldown_ms
        for identity in [i for i, sent in self._last_sent.items() if sent <= cutoff]:
            del self._last_sent[identity]

    def dispatch(self, event: Event) -> bool:
        """Forward an event unless its identity was dispatched within the cooldown."""
        now_ms = self._clock() * 1000
        self._prune(now_ms)

        if not event.is_safety_critical and event.identity in self._last_sent:
            self._suppressed += 1
            self.log.debug("event_suppressed", identity=event.identity)
            return False

        self._last_sent[event.identity] = now_ms
        self._visible.appendleft(Notification(event))
        self._dispatched += 1
        self.log.info(
            "event_dispatched",
            kind=event.kind.value,
            identity=event.identity,
            severity=event.severity.value,
        )

        for sink in list(self._sinks):
            try:
                sink(event)
            except Exception as e:
                self.log.error("event_sink_error", identity=event.identity, error=str(e))

        if self._wants_push(event):
            self._push(event)
        return True

    def _wants_push(self, event: Event) -> bool:
        if event.is_safety_critical:
            return True
        return self.preferences.push_notifications and event.severity.at_least(Severity.WARNING)

    def _push(self, event: Event):
        if self._platform_notifier is None:
            return
        try:
            self._platform_notifier(event.title, event.message)
        except Exception as e:
            self.log.error("platform_notification_failed", identity=event.identity, error=str(e))

    # ─── UI-visible list ────────────────────────────────────────────

    @property
    def notifications(self) -> list[Notification]:
        return list(self._visible)

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self._visible if not n.read)

    def mark_read(self, identity: str) -> bool:
        found = False
        for n in self._visible:
            if n.event.identity == identity:
                n.read = True
                found = True
        return found

    def clear(self):
        self._visible.clear()

    @property
    def stats(self) -> dict[str, int]:
        return {
            "dispatched": self._dispatched,
            "suppressed": self._suppressed,
            "tracked_identities": len(self._last_sent),
        }
