"""
Budget reservation boundary.

Routing never derives today's spend from local state. It asks a
:class:`BudgetService`, and every generation call is backed by a
reservation that is later committed with the actual cost or cancelled.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any
from uuid import uuid4

from loguru import logger


@dataclass
class BudgetReservation:
    """Answer to a reservation request."""

    can_proceed: bool
    reservation_id: str | None
    current_total: float
    reason: str = ""


class BudgetService(ABC):
    """Atomic daily budget service."""

    @abstractmethod
    async def reserve(
        self,
        estimated_cost: float,
        service_name: str = "routing",
        metadata: dict[str, Any] | None = None,
    ) -> BudgetReservation:
        """Reserve ``estimated_cost`` against today's budget."""
        ...

    @abstractmethod
    async def commit(self, reservation_id: str, actual_cost: float) -> None:
        """Replace a reservation with the actual cost."""
        ...

    @abstractmethod
    async def cancel(self, reservation_id: str) -> None:
        """Release a reservation without spending."""
        ...

    @abstractmethod
    async def daily_spend(self) -> float:
        """Today's spend including outstanding reservations."""
        ...


class InMemoryBudgetLedger(BudgetService):
    """
    Process-local budget ledger.

    Every read-reserve-commit step runs under one lock, so concurrent work
    orders can never jointly reserve past ``daily_limit``.

    Example:
        >>> ledger = InMemoryBudgetLedger(daily_limit=10.0)
        >>> reservation = await ledger.reserve(2.5)
        >>> await ledger.commit(reservation.reservation_id, 1.75)
        >>> await ledger.daily_spend()
        1.75
    """

    def __init__(self, daily_limit: float, spent: float = 0.0) -> None:
        """
        Initialize the ledger.

        Args:
            daily_limit: Total that reservations may never exceed.
            spent: Spend already committed today.
        """
        self.daily_limit = daily_limit
        self._committed = spent
        self._reserved: dict[str, float] = {}
        self._lock = asyncio.Lock()

    @property
    def committed(self) -> float:
        """Committed spend, excluding outstanding reservations."""
        return self._committed

    @property
    def outstanding(self) -> float:
        """Sum of open reservations."""
        return sum(self._reserved.values())

    async def reserve(
        self,
        estimated_cost: float,
        service_name: str = "routing",
        metadata: dict[str, Any] | None = None,
    ) -> BudgetReservation:
        async with self._lock:
            current = self._committed + self.outstanding
            if current + estimated_cost > self.daily_limit:
                logger.warning(
                    f"Budget reservation refused for {service_name}: "
                    f"${current:.2f} + ${estimated_cost:.2f} > ${self.daily_limit:.2f}"
                )
                return BudgetReservation(
                    can_proceed=False,
                    reservation_id=None,
                    current_total=current,
                    reason="Daily budget limit would be exceeded",
                )

            reservation_id = f"res-{uuid4().hex[:12]}"
            self._reserved[reservation_id] = estimated_cost
            logger.debug(
                f"Reserved ${estimated_cost:.2f} for {service_name} ({reservation_id})"
            )
            return BudgetReservation(
                can_proceed=True,
                reservation_id=reservation_id,
                current_total=current + estimated_cost,
            )

    async def commit(self, reservation_id: str, actual_cost: float) -> None:
        async with self._lock:
            if reservation_id not in self._reserved:
                raise KeyError(f"Unknown budget reservation: {reservation_id}")
            del self._reserved[reservation_id]
            self._committed += actual_cost
            logger.debug(f"Committed ${actual_cost:.4f} ({reservation_id})")

    async def cancel(self, reservation_id: str) -> None:
        async with self._lock:
            if self._reserved.pop(reservation_id, None) is not None:
                logger.debug(f"Cancelled reservation {reservation_id}")

    async def daily_spend(self) -> float:
        async with self._lock:
            return self._committed + self.outstanding
