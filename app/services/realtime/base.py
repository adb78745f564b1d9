"""
Change Feed Abstract Base Class

Defines the interface for publishing "a row changed" notifications and
subscribing to them. Subscribers get a generic event with no diff
guarantee and are expected to refetch.

Implementations:
    - InMemoryChangeFeed: single-process, used in development and tests
    - RedisChangeFeed: Redis pub/sub, shared by every API worker

Version: 1.0.0
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional


@dataclass(frozen=True)
class ChangeEvent:
    """
    A row in ``table`` was inserted, updated or deleted.

    Attributes:
        table: Table name (e.g. "orders")
        action: "insert", "update" or "delete"
        row_id: Primary key of the changed row
        values: Column values after the change (filter columns at least)
        previous: Column values before the change, for updates and deletes
    """
    table: str
    action: str
    row_id: Any = None
    values: dict[str, Any] = field(default_factory=dict)
    previous: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "action": self.action,
            "row_id": self.row_id,
            "values": self.values,
            "previous": self.previous,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChangeEvent":
        return cls(
            table=data["table"],
            action=data["action"],
            row_id=data.get("row_id"),
            values=data.get("values") or {},
            previous=data.get("previous") or {},
        )


@dataclass(frozen=True)
class ChangeScope:
    """
    What a subscriber is interested in: a table, optionally narrowed to rows
    whose ``column`` equals ``value`` (e.g. one restaurant's orders).

    A row that moves out of the filter (pending -> verified) still matches
    through its previous values, so the subscriber sees it leave.
    """
    table: str
    column: Optional[str] = None
    value: Any = None

    def matches(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        if self.column is None:
            return True
        wanted = _normalize(self.value)
        return (
            _normalize(event.values.get(self.column)) == wanted
            or _normalize(event.previous.get(self.column)) == wanted
        )

    @property
    def channel_name(self) -> str:
        if self.column is None:
            return self.table
        return f"{self.table}:{self.column}={self.value}"


def _normalize(value: Any) -> Any:
    # Enum members and ids may arrive as plain strings after a JSON round trip
    value = getattr(value, "value", value)
    return None if value is None else str(value)


ChangeCallback = Callable[[ChangeEvent], Any]
Unsubscribe = Callable[[], Awaitable[None]]


class BaseChangeFeed(ABC):
    """Abstract base class for change feeds."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the provider name."""
        pass

    @abstractmethod
    async def publish(self, event: ChangeEvent) -> None:
        """Announce a change to every matching subscriber."""
        pass

    @abstractmethod
    async def subscribe(self, scope: ChangeScope, callback: ChangeCallback) -> Unsubscribe:
        """
        Register ``callback`` for events matching ``scope``.

        The subscription is active when this coroutine returns.

        Returns:
            Coroutine function that releases the subscription
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check feed connectivity."""
        pass

    async def close(self) -> None:
        """Release connections held by the feed."""
        return None
