"""
Retry helpers.
Bounded attempt policies and a delay that can be cancelled from another thread.
"""

import threading  # Event gives an interruptible sleep
from dataclasses import dataclass  # policy container


class CancellableDelay:
	"""
	Sleep primitive used between retry attempts.
	`cancel()` wakes every pending and future `wait()` immediately.
	"""

	def __init__(self):
		self._cancelled = threading.Event()

	def wait(self, seconds: float) -> bool:
		"""Sleep for `seconds`; return True if the delay was cancelled."""
		if seconds <= 0:
			return self._cancelled.is_set()
		return self._cancelled.wait(seconds)

	def cancel(self) -> None:
		self._cancelled.set()

	@property
	def cancelled(self) -> bool:
		return self._cancelled.is_set()


@dataclass
class RetryPolicy:
	"""
	Backoff schedule for the embedding provider.
	- rate limited (429): base_delay * 2**(attempt-1), capped at max_backoff
	- server or transport error: fixed server_error_delay
	"""
	max_attempts: int = 15
	base_delay: float = 1.0
	max_backoff: float = 16.0
	server_error_delay: float = 2.0

	def rate_limit_delay(self, attempt: int) -> float:
		"""Delay after the given (1-based) rate-limited attempt."""
		return min(self.base_delay * (2 ** (attempt - 1)), self.max_backoff)
