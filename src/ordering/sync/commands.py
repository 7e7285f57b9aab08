"""Command lifecycle and per-item sync state for the remote cart sync."""

import asyncio
from dataclasses import dataclass, field
from enum import Enum

from ordering.errors import SyncError


class SyncState(Enum):
    IDLE = "Idle"
    PENDING = "Pending"
    RECONCILING = "Reconciling"


class CommandStatus(Enum):
    PENDING = "Pending"
    FULFILLED = "Fulfilled"
    REJECTED = "Rejected"
    DISCARDED = "Discarded"  # response arrived after the command was superseded


@dataclass
class ItemSync:
    """Sync bookkeeping for one cart line.

    ``generation`` is the sequence of the newest command issued for the item;
    only a response carrying that sequence may change local state.
    ``confirmed`` is the line as the remote service last confirmed it
    (``None`` when the service has no such line).
    """

    state: SyncState = SyncState.IDLE
    generation: int = 0
    confirmed: dict | None = None
    confirmed_sequence: int = 0
    line_number: int | None = None


@dataclass(eq=False)
class CartCommand:
    """A cart mutation on its way to the remote service.

    Awaiting a command waits for its remote outcome: it returns the command
    when fulfilled and raises the ``NetworkError`` (rejected) or
    ``ConflictError`` (discarded) otherwise.
    """

    name: str
    sequence: int
    epoch: int
    product_id: str | None = None
    status: CommandStatus = CommandStatus.PENDING
    error: SyncError | None = None
    task: asyncio.Task | None = field(default=None, repr=False)

    @property
    def done(self) -> bool:
        return self.status is not CommandStatus.PENDING

    def __await__(self):
        return self._outcome().__await__()

    async def _outcome(self) -> "CartCommand":
        if self.task is not None:
            await self.task
        if self.error is not None:
            raise self.error
        return self
