"""Synchronisation between the local ledger and the remote store."""

import logging
from typing import Optional

from .accounting import ConnectionStatus
from .exceptions import TransportError
from .reconciliation import MergeResult
from .services import LedgerService
from .transport import RemoteStoreBase

logger = logging.getLogger(__name__)


class SyncManager:
    """Moves state between a LedgerService and a remote store.

    Network calls happen before any local change. A failed call marks the
    connection offline and leaves the ledger at its last known good state;
    failures are not retried.
    """

    def __init__(self, service: LedgerService, store: RemoteStoreBase):
        """Initialize the manager.

        Args:
            service: Ledger service whose state is synchronised.
            store: Remote store to talk to.
        """
        self.service = service
        self.store = store

    @property
    def status(self) -> ConnectionStatus:
        return self.service.connection_status

    def _set_status(self, status: ConnectionStatus) -> None:
        if self.service.connection_status != status:
            logger.info(f"Connection status: {self.service.connection_status.value} -> {status.value}")
        self.service.connection_status = status

    async def refresh(self) -> bool:
        """Replace local state with the remote snapshot.

        Returns:
            True on success, False when the store could not be read.
        """
        self._set_status(ConnectionStatus.PENDING)
        try:
            snapshot = await self.store.fetch_snapshot()
        except TransportError as e:
            logger.error(f"Snapshot refresh failed, keeping local state: {e}")
            self._set_status(ConnectionStatus.OFFLINE)
            return False
        self.service.load_snapshot(snapshot)
        self._set_status(ConnectionStatus.ONLINE)
        return True

    async def pull_external(self) -> Optional[MergeResult]:
        """Fetch the virtual-office feed and merge it into the ledger.

        Returns:
            MergeResult, or None when the feed could not be fetched.
        """
        try:
            raw_records = await self.store.fetch_external_payments()
        except TransportError as e:
            logger.error(f"External payments fetch failed: {e}")
            self._set_status(ConnectionStatus.OFFLINE)
            return None
        result = self.service.apply_external(raw_records)
        self._set_status(ConnectionStatus.ONLINE)
        return result

    async def push(self) -> bool:
        """Send the whole local state to the store (fire and forget).

        Returns:
            True on success, False when the push failed.
        """
        try:
            await self.store.push_snapshot(self.service.snapshot())
        except TransportError as e:
            logger.error(f"Push to remote store failed: {e}")
            self._set_status(ConnectionStatus.OFFLINE)
            return False
        self._set_status(ConnectionStatus.ONLINE)
        return True
