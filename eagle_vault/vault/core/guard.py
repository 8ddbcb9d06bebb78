"""
Call Guard and Ledger Transactions.

Every state-changing vault entry point runs under a single non-reentrant
guard and inside a ledger transaction:
- Begin: snapshot the ledger
- Execute: mutate the ledger, call collaborators, register compensations
- Commit: keep the new state
- Rollback: restore the snapshot, run compensations in reverse order,
  resync idle token amounts from the vault's own balances and re-book the
  token moves that cannot be undone (settlements)
"""

import asyncio
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Tuple

from eagle_vault.core import ReentrantCall, get_logger

from ..interfaces import TokenProtocol
from ..models.state import VaultLedger

logger = get_logger(__name__)

Compensation = Callable[[], Awaitable[None]]
Settlement = Callable[[VaultLedger], None]


class TransactionStatus(Enum):
    """
    Status of a ledger transaction.

    Lifecycle: EXECUTING -> COMMITTED or ROLLED_BACK
    """

    EXECUTING = "executing"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class ReentrancyGuard:
    """
    Single mutual-exclusion guard for one vault instance.

    Concurrent tasks are serialized; a nested entry from the task already
    holding the guard (a collaborator calling back into the vault) fails
    with ReentrantCall instead of deadlocking.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._owner: Optional[asyncio.Task] = None

    @property
    def entered(self) -> bool:
        return self._owner is not None

    @asynccontextmanager
    async def hold(self, operation: str) -> AsyncIterator[None]:
        task = asyncio.current_task()
        if self._owner is not None and self._owner is task:
            raise ReentrantCall(
                f"Reentrant call to {operation}",
                code="REENTRANT",
            )
        async with self._lock:
            self._owner = task
            try:
                yield
            finally:
                self._owner = None


class LedgerTransaction:
    """One top-level call's view of the ledger: snapshot plus compensations."""

    def __init__(self, operation: str, pre_state: VaultLedger):
        self.transaction_id = str(uuid.uuid4())
        self.operation = operation
        self.pre_state = pre_state
        self.started_at = datetime.now(timezone.utc)
        self.completed_at: Optional[datetime] = None
        self.status = TransactionStatus.EXECUTING
        self.error_message: Optional[str] = None
        self._compensations: List[Tuple[str, Compensation]] = []
        self._settlements: List[Tuple[str, Settlement]] = []

    @property
    def compensations(self) -> List[Tuple[str, Compensation]]:
        return list(self._compensations)

    def on_rollback(self, description: str, callback: Compensation) -> None:
        """Register an action that undoes an external effect of this call."""
        self._compensations.append((description, callback))

    @property
    def settlements(self) -> List[Tuple[str, Settlement]]:
        return list(self._settlements)

    def settle_on_rollback(self, description: str, adjust: Settlement) -> None:
        """
        Register a ledger adjustment for an external move that cannot be undone.

        Adjustments are applied, in order, to the restored ledger after idle
        token amounts have been resynced.
        """
        self._settlements.append((description, adjust))

    def mark_committed(self) -> None:
        self.status = TransactionStatus.COMMITTED
        self.completed_at = datetime.now(timezone.utc)

    def mark_rolled_back(self, reason: str) -> None:
        self.status = TransactionStatus.ROLLED_BACK
        self.error_message = reason
        self.completed_at = datetime.now(timezone.utc)


class TransactionManager:
    """
    Runs vault calls as all-or-nothing ledger transactions.

    Example:
        >>> async with manager.transaction("deposit") as tx:
        ...     ledger.idle_primary += assets
        ...     await token.transfer(caller, vault, assets)
    """

    def __init__(
        self,
        ledger: VaultLedger,
        primary_token: TokenProtocol,
        secondary_token: TokenProtocol,
        max_history: int = 100,
    ):
        self._ledger = ledger
        self._primary = primary_token
        self._secondary = secondary_token
        self._history: List[LedgerTransaction] = []
        self._max_history = max_history

    @property
    def history(self) -> List[LedgerTransaction]:
        return list(self._history)

    @asynccontextmanager
    async def transaction(self, operation: str) -> AsyncIterator[LedgerTransaction]:
        tx = LedgerTransaction(operation, self._ledger.snapshot())
        try:
            yield tx
        except BaseException as e:
            await self._rollback(tx, e)
            raise
        else:
            tx.mark_committed()
        finally:
            self._record(tx)

    async def _rollback(self, tx: LedgerTransaction, error: BaseException) -> None:
        logger.warning(
            f"Rolling back {tx.operation} ({tx.transaction_id[:8]}): {error!r}"
        )
        self._ledger.restore(tx.pre_state)

        for description, callback in reversed(tx.compensations):
            try:
                await callback()
            except Exception as e:
                logger.error(
                    f"Compensation '{description}' failed for "
                    f"{tx.transaction_id[:8]}: {e}"
                )

        try:
            await self.resync_idle()
        except Exception as e:
            logger.error(f"Idle resync failed after rollback of {tx.operation}: {e}")

        for description, adjust in tx.settlements:
            adjust(self._ledger)
            logger.info(f"Settled after rollback of {tx.operation}: {description}")

        tx.mark_rolled_back(str(error))

    async def resync_idle(self) -> None:
        """Resync idle token amounts from the vault's own token balances."""
        vault = self._ledger.vault_address
        self._ledger.idle_primary = await self._primary.balance_of(vault)
        self._ledger.idle_secondary = await self._secondary.balance_of(vault)

    def _record(self, tx: LedgerTransaction) -> None:
        self._history.append(tx)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]
