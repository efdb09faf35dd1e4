"""
Collaborator interfaces consumed by the lifecycle managers.

Implementations live in ``src.infrastructure`` (SQLAlchemy, Redis and
in-process variants).  Stores hand out *copies*: mutating a returned
entity has no effect until ``save`` succeeds, and ``save`` rejects the
write with ``StaleStateError`` if the record's ``version`` moved on.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from .entities import Booking, RideOffer


@dataclass(frozen=True)
class UserProfile:
    id: str
    display_name: str
    is_verified: bool = True
    is_active: bool = True


class IdentityService(ABC):
    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserProfile]: ...


class RideStore(ABC):
    @abstractmethod
    async def add(self, ride: RideOffer) -> RideOffer: ...

    @abstractmethod
    async def get(self, ride_id: str, *, for_update: bool = False) -> Optional[RideOffer]: ...

    @abstractmethod
    async def save(self, ride: RideOffer) -> RideOffer: ...

    @abstractmethod
    async def list_by_driver(self, driver_id: str) -> list[RideOffer]: ...

    @abstractmethod
    async def list_children(self, parent_ride_id: str) -> list[RideOffer]: ...


class BookingStore(ABC):
    @abstractmethod
    async def add(self, booking: Booking) -> Booking: ...

    @abstractmethod
    async def get(self, booking_id: str) -> Optional[Booking]: ...

    @abstractmethod
    async def save(self, booking: Booking) -> Booking: ...

    @abstractmethod
    async def list_for_ride(self, ride_id: str) -> list[Booking]: ...

    @abstractmethod
    async def list_active_for_ride(self, ride_id: str) -> list[Booking]: ...

    @abstractmethod
    async def find_active(self, passenger_id: str, ride_id: str) -> Optional[Booking]: ...

    @abstractmethod
    async def list_expired_pending(self, now: datetime, limit: int = 100) -> list[Booking]: ...

    @abstractmethod
    async def list_reminder_due(
        self, now: datetime, until: datetime, limit: int = 100
    ) -> list[Booking]: ...


class NotificationDispatcher(ABC):
    """Fire-and-forget delivery; callers log failures and carry on."""

    @abstractmethod
    async def publish(self, event: str, payload: dict[str, Any]) -> None: ...


class LockManager(ABC):
    @abstractmethod
    def hold(self, key: str) -> AbstractAsyncContextManager[None]:
        """Exclusive section for *key*; raises ``ConflictError`` if busy."""
