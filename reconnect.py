"""Backoff retries and availability polling for the Discord session."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from models import ReconnectPolicy
from serial_worker import DelayedCall, RepeatingCall, SerialWorker

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_S = 15.0


class ReconnectSupervisor:
    """Owns the retry timer and the availability poll of one session.

    Both timers fire on the session's worker thread. ``on_retry`` and
    ``on_poll`` are expected to check for themselves whether a connect is
    still wanted.
    """

    def __init__(
        self,
        worker: SerialWorker,
        on_retry: Callable[[], None],
        on_poll: Callable[[], None],
        policy: Optional[ReconnectPolicy] = None,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
    ) -> None:
        self._worker = worker
        self._on_retry = on_retry
        self._on_poll = on_poll
        self.policy = policy or ReconnectPolicy()
        self._poll_interval_s = poll_interval_s
        self._retry_call: Optional[DelayedCall] = None
        self._poll_call: Optional[RepeatingCall] = None

    @property
    def retry_pending(self) -> bool:
        return self._retry_call is not None and not self._retry_call.cancelled

    @property
    def polling(self) -> bool:
        return self._poll_call is not None and not self._poll_call.cancelled

    def schedule_retry(self) -> float:
        """Arm the one-shot retry timer and grow the backoff; returns the delay used."""
        self.cancel_retry()
        delay = self.policy.record_failure()
        logger.info("Scheduling reconnect in %.0fs", delay)
        self._retry_call = self._worker.call_later(delay, self._fire_retry)
        return delay

    def cancel_retry(self) -> None:
        if self._retry_call is not None:
            self._retry_call.cancel()
            self._retry_call = None

    def start_polling(self) -> None:
        self.stop_polling()
        self._poll_call = self._worker.call_repeating(self._poll_interval_s, self._on_poll)

    def stop_polling(self) -> None:
        if self._poll_call is not None:
            self._poll_call.cancel()
            self._poll_call = None

    def reset(self) -> None:
        self.cancel_retry()
        self.policy.reset()

    def cancel(self) -> None:
        self.cancel_retry()
        self.stop_polling()

    def _fire_retry(self) -> None:
        self._retry_call = None
        self._on_retry()
