"""
FaultInjector interface.

Defines the contract for disabling backend nodes for a bounded window.
"""

from abc import ABC, abstractmethod


class FaultInjector(ABC):
    """Disrupts a set of backend nodes for a fixed duration."""

    @abstractmethod
    def disrupt(self, node_ids: frozenset[str], duration_s: int) -> None:
        """
        Disrupt ``node_ids`` for ``duration_s`` seconds.

        Blocks until the disruption window is over.

        Raises:
            InjectionError: If the disruption could not be carried out.
        """
        pass
