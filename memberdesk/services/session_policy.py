"""
Inactivity policy — logs a session out after a period without requests.

Every authenticated request first asks the policy whether the session
is still alive, then records the activity. ``sweep()`` expires every
idle session at once and can be run from a scheduler or the CLI.

Ended and timed-out session ids are remembered for ``retention_seconds``
(the access token lifetime); past that the token itself is rejected as
expired, so the id is dropped. State lives in process memory: run the
app as a single worker process (threads are fine).

The clock and the timeout callback are injected, so tests drive time
explicitly:

    clock = FakeClock()
    policy = InactivityPolicy(timeout_seconds=3600, clock=clock)
    policy.start("sess-1", member_id=7)
    clock.advance(3601)
    assert policy.check("sess-1", member_id=7) is False
"""

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 3600
DEFAULT_RETENTION_SECONDS = 8 * 3600


def _log_timeout(member_id):
    logger.info("Session expired after inactivity", extra={"member_id": member_id,
                                                           "event_type": "session_timeout"})


class InactivityPolicy:
    """Tracks last activity per session id (the access token ``jti``)."""

    def __init__(
        self,
        timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        on_timeout: Callable[[int], None] | None = None,
        retention_seconds: int = DEFAULT_RETENTION_SECONDS,
    ):
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if retention_seconds <= 0:
            raise ValueError("retention_seconds must be positive")
        self.timeout_seconds = timeout_seconds
        self.retention_seconds = retention_seconds
        self._clock = clock
        self._on_timeout = on_timeout or _log_timeout
        self._last_seen: dict[str, tuple[float, int]] = {}
        # session id -> time it was ended, oldest first
        self._expired: dict[str, float] = {}
        self._lock = threading.Lock()

    def start(self, session_id: str, member_id: int) -> None:
        """Register a fresh session (login)."""
        with self._lock:
            self._expired.pop(session_id, None)
            self._last_seen[session_id] = (self._clock(), member_id)

    def check(self, session_id: str, member_id: int) -> bool:
        """Return False if the session has expired, else record activity.

        A session unknown to the policy (e.g. after a restart) is adopted
        as fresh. An expired session stays expired; the member must log in
        again.
        """
        fire = False
        with self._lock:
            now = self._clock()
            self._prune(now)
            if session_id in self._expired:
                return False
            seen = self._last_seen.get(session_id)
            if seen is not None and now - seen[0] > self.timeout_seconds:
                self._expire(session_id, now)
                fire = True
            else:
                self._last_seen[session_id] = (now, member_id)
        if fire:
            self._on_timeout(member_id)
            return False
        return True

    def end(self, session_id: str) -> None:
        """Forget a session (explicit logout)."""
        with self._lock:
            now = self._clock()
            self._prune(now)
            self._expire(session_id, now)

    def sweep(self) -> list[int]:
        """Expire every idle session. Returns the affected member ids."""
        now = self._clock()
        with self._lock:
            self._prune(now)
            idle = [
                (sid, mid) for sid, (seen, mid) in self._last_seen.items()
                if now - seen > self.timeout_seconds
            ]
            for sid, _ in idle:
                self._expire(sid, now)
        for _, member_id in idle:
            self._on_timeout(member_id)
        return [mid for _, mid in idle]

    def _expire(self, session_id, now):
        self._last_seen.pop(session_id, None)
        self._expired.pop(session_id, None)
        self._expired[session_id] = now

    def _prune(self, now):
        while self._expired:
            sid, ended = next(iter(self._expired.items()))
            if now - ended <= self.retention_seconds:
                break
            del self._expired[sid]

    @property
    def active_sessions(self) -> int:
        return len(self._last_seen)

    @property
    def retained_expired(self) -> int:
        """Ended or timed-out session ids still remembered."""
        return len(self._expired)
