"""Remote store interface for the ledger's transport collaborator."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from ..accounting.snapshot import LedgerSnapshot


class RemoteStoreBase(ABC):
    """Base class for remote ledger stores."""

    @abstractmethod
    async def fetch_snapshot(self) -> LedgerSnapshot:
        """Fetch users, representatives, payments and fees as one snapshot.

        Returns:
            LedgerSnapshot replacing the whole local state.

        Raises:
            TransportError: If the store is unreachable or answers with an error.
        """
        raise NotImplementedError

    @abstractmethod
    async def fetch_external_payments(self) -> List[Dict[str, Any]]:
        """Fetch raw, loosely structured payments reported through the virtual office.

        Returns:
            Raw records, to be handed to the reconciliation merger.
        """
        raise NotImplementedError

    @abstractmethod
    async def push_snapshot(self, snapshot: LedgerSnapshot) -> None:
        """Send the full local state to the store.

        Raises:
            TransportError: If the push fails.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release any held connections."""
        return None
