from __future__ import annotations

import math
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Optional

MAX_LOGIN_ATTEMPTS = 5
LOCKOUT_DURATION_SECONDS = 15 * 60


@dataclass
class LoginAttemptRecord:
    count: int = 0
    locked_until: Optional[float] = None
    last_failure: Optional[float] = None


@dataclass(frozen=True)
class ThrottleDecision:
    allowed: bool
    remaining_seconds: Optional[int] = None


class LoginThrottle:
    """In-memory failed-login counter with temporary lockout.

    Records are keyed by the lowercased identifier (the login email). State is
    per-process and lost on restart; several server instances each enforce
    their own counters. The lock makes increment-and-compare atomic within a
    process.

    Failures below the limit are forgotten once the identifier has been idle
    for a full lockout period.
    """

    def __init__(
        self,
        max_attempts: int = MAX_LOGIN_ATTEMPTS,
        lockout_seconds: int = LOCKOUT_DURATION_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._max_attempts = max_attempts
        self._lockout_seconds = lockout_seconds
        self._clock = clock
        self._records: Dict[str, LoginAttemptRecord] = {}
        self._lock = Lock()

    @staticmethod
    def _key(identifier: str) -> str:
        return f"login:attempts:{identifier.strip().lower()}"

    def _is_expired(self, record: LoginAttemptRecord, now: float) -> bool:
        if record.count == 0:
            return True
        if record.locked_until is not None:
            return now >= record.locked_until
        return record.last_failure is not None and now - record.last_failure >= self._lockout_seconds

    def check_attempts(self, identifier: str) -> ThrottleDecision:
        with self._lock:
            record = self._records.get(self._key(identifier))
            if record is None or record.locked_until is None:
                return ThrottleDecision(allowed=True)

            now = self._clock()
            if now < record.locked_until:
                remaining = math.ceil(record.locked_until - now)
                return ThrottleDecision(allowed=False, remaining_seconds=remaining)

            # Lockout has elapsed: start over
            record.count = 0
            record.locked_until = None
            return ThrottleDecision(allowed=True)

    def record_attempt(self, identifier: str, success: bool) -> None:
        key = self._key(identifier)
        with self._lock:
            record = self._records.setdefault(key, LoginAttemptRecord())
            if success:
                record.count = 0
                record.locked_until = None
                return

            now = self._clock()
            if self._is_expired(record, now):
                record.count = 0
                record.locked_until = None
            record.count += 1
            record.last_failure = now
            if record.count >= self._max_attempts:
                record.locked_until = now + self._lockout_seconds

    def purge_expired(self) -> int:
        """Drop records that are clear, past their lockout, or idle a full lockout period"""
        now = self._clock()
        with self._lock:
            stale = [key for key, record in self._records.items() if self._is_expired(record, now)]
            for key in stale:
                self._records.pop(key, None)
        return len(stale)

    def reset(self) -> None:
        with self._lock:
            self._records.clear()


login_throttle = LoginThrottle()
