#
# Copyright 2025 The SimpliSafeLocal contributors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#    http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#

"""Process-wide rate limit tracking for the SimpliSafe account.

Gate Semantics:
===============

- One RateLimitGate is created by the platform and handed to every
  component that talks to the account or reads device state.
- While blocked and before next_attempt, reads fail fast with
  RateLimitError. Nothing retries locally; the platform owns the single
  scheduled retry of the whole reconciliation.
- A failure uses the upstream retry hint when there is one, otherwise a
  fixed backoff.
- Any successful call clears the blocked flag.
"""

import logging
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from .errors import RateLimitError

logger = logging.getLogger('simplisafe-local')

DEFAULT_BACKOFF_SECONDS = 60.0

T = TypeVar('T')


class RateLimitGate:
    """
    Blocked/unblocked state and the earliest time a request may be retried.

    Args:
        backoff_seconds: Delay used when a failure carries no retry hint
        clock: Returns the current time in epoch seconds (injectable for tests)
    """

    def __init__(self, backoff_seconds: float = DEFAULT_BACKOFF_SECONDS, clock: Callable[[], float] = time.time):
        self.backoff_seconds = backoff_seconds
        self._clock = clock
        self._blocked = False
        self._next_attempt = 0.0
        self.failure_count = 0

    def is_blocked(self) -> bool:
        return self._blocked

    def next_attempt(self) -> float:
        return self._next_attempt

    def seconds_until_retry(self) -> float:
        """Seconds until next_attempt, never negative."""
        return max(0.0, self._next_attempt - self._clock())

    def record_failure(self, retry_after: Optional[float] = None):
        """
        Mark the account as blocked.

        Args:
            retry_after: Upstream retry hint in seconds, falls back to backoff_seconds
        """
        delay = retry_after if retry_after is not None and retry_after >= 0 else self.backoff_seconds
        self._blocked = True
        self._next_attempt = self._clock() + delay
        self.failure_count += 1
        logger.warning(f"SimpliSafe requests blocked, next attempt in {delay:.0f}s")

    def record_success(self):
        if self._blocked:
            logger.info("SimpliSafe rate limit cleared")
        self._blocked = False
        self.failure_count = 0

    def check(self):
        """Raise RateLimitError if a request must not be made right now."""
        if self._blocked and self._clock() < self._next_attempt:
            raise RateLimitError(retry_after=self.seconds_until_retry())

    async def call(self, fn: Callable[..., Awaitable[T]], *args, **kwargs) -> T:
        """
        Run an account request through the gate.

        Fails fast while blocked, records success, and records failures
        (with the upstream hint) before re-raising them.
        """
        self.check()
        try:
            result = await fn(*args, **kwargs)
        except RateLimitError as e:
            self.record_failure(e.retry_after)
            raise
        self.record_success()
        return result

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for status reporting."""
        return {
            'blocked': self._blocked,
            'next_attempt': datetime.fromtimestamp(self._next_attempt).isoformat() if self._blocked else None,
            'retry_in_seconds': round(self.seconds_until_retry(), 1) if self._blocked else None,
            'failure_count': self.failure_count,
        }

    def __repr__(self) -> str:
        if self._blocked:
            return f"<RateLimitGate: blocked, retry in {self.seconds_until_retry():.0f}s>"
        return "<RateLimitGate: open>"
