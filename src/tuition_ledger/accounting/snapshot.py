"""Whole-state snapshot exchanged with the remote store and the local database."""

from typing import Any, Dict, List

from pydantic import Field

from .fees import FeeSchedule
from .models import LedgerModel, PaymentRecord, Representative, User


class LedgerSnapshot(LedgerModel):
    """Users, representatives, payments and fees, replaced as a whole."""
    users: List[User] = Field(default_factory=list)
    representatives: List[Representative] = Field(default_factory=list)
    payments: List[PaymentRecord] = Field(default_factory=list)
    fees: Dict[str, Any] = Field(default_factory=dict)

    def fee_schedule(self) -> FeeSchedule:
        """Fee schedule carried by the snapshot (may be incomplete)."""
        return FeeSchedule.from_mapping(self.fees)

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dictionary using the camelCase field names."""
        return self.model_dump(mode="json", by_alias=True)
