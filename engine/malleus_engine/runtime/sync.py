"""
Synchronization primitives shared by the sessions of one run.

- TeardownBarrier: phaser-style rendezvous with dynamic membership
- CountDownLatch: one-shot counting wait
"""

import threading


class TeardownBarrier:
    """
    Reusable rendezvous point with dynamic party registration.

    A phase completes when every registered party has arrived. Parties
    that fail early call arrive_and_deregister(), which shrinks the cohort
    and may complete the phase for those already waiting.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._parties = 0
        self._arrived = 0
        self._phase = 0

    @property
    def phase(self) -> int:
        """Number of completed phases."""
        with self._cond:
            return self._phase

    @property
    def registered_parties(self) -> int:
        with self._cond:
            return self._parties

    @property
    def arrived_parties(self) -> int:
        with self._cond:
            return self._arrived

    def register(self) -> int:
        """Add a party to the current phase. Returns the phase number."""
        with self._cond:
            self._parties += 1
            return self._phase

    def arrive_and_deregister(self) -> int:
        """
        Leave the barrier without waiting.

        Returns:
            The phase number at arrival.
        """
        with self._cond:
            if self._parties == 0:
                raise RuntimeError("arrive_and_deregister() with no registered parties")
            phase = self._phase
            self._parties -= 1
            self._advance_if_complete()
            return phase

    def arrive_and_await_advance(self, timeout: float | None = None) -> int:
        """
        Arrive and wait for all registered parties to arrive.

        Args:
            timeout: Optional wait limit in seconds.

        Returns:
            The new phase number.

        Raises:
            TimeoutError: If the phase did not complete within ``timeout``.
        """
        with self._cond:
            if self._arrived >= self._parties:
                raise RuntimeError("arrive_and_await_advance() by an unregistered party")
            phase = self._phase
            self._arrived += 1
            if self._advance_if_complete():
                return self._phase
            if not self._cond.wait_for(lambda: self._phase != phase, timeout=timeout):
                raise TimeoutError(f"teardown barrier phase {phase} did not complete")
            return self._phase

    def _advance_if_complete(self) -> bool:
        # caller holds self._cond
        if self._arrived == 0 or self._arrived < self._parties:
            return False
        self._arrived = 0
        self._phase += 1
        self._cond.notify_all()
        return True


class CountDownLatch:
    """One-shot latch released when the count reaches zero."""

    def __init__(self, count: int) -> None:
        if count < 0:
            raise ValueError("count must be >= 0")
        self._cond = threading.Condition()
        self._count = count

    @property
    def count(self) -> int:
        with self._cond:
            return self._count

    def count_down(self) -> None:
        with self._cond:
            if self._count > 0:
                self._count -= 1
                if self._count == 0:
                    self._cond.notify_all()

    def wait(self, timeout: float | None = None) -> bool:
        """Wait for the count to reach zero. Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: self._count == 0, timeout=timeout)
