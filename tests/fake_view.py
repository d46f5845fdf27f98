"""
fake_view.py - Test Helper for SupplyChainView

Provides a minimal SupplyChainView implementation for testing validators
and queries without building a full SupplyChainLedger.
"""

from __future__ import annotations
from datetime import datetime
from typing import Dict, List, Optional

from lotledger import NotFound, UNREGISTERED_PARTICIPANT
from lotledger.core import Participant, Lot, Transfer


class FakeView:
    """
    Minimal immutable SupplyChainView for testing pure functions.

    Example:
        view = FakeView(
            participants=[Participant(1, 'farm', Role.PRODUCER, ApprovalStatus.APPROVED)],
            lots=[Lot(1, 'farm', 'Wheat', 100)],
            balances={1: {'farm': 100}},
        )

        list_lots_for(view, 'farm')
        # Returns: [1]
    """

    def __init__(
        self,
        participants: Optional[List[Participant]] = None,
        lots: Optional[List[Lot]] = None,
        balances: Optional[Dict[int, Dict[str, int]]] = None,
        transfers: Optional[List[Transfer]] = None,
        administrator: str = "admin",
        time: Optional[datetime] = None,
    ):
        self._participants = {p.identity: p for p in (participants or [])}
        self._lots = {lot.lot_id: lot for lot in (lots or [])}
        self._balances = balances or {}
        self._transfers = {t.transfer_id: t for t in (transfers or [])}
        self._administrator = administrator
        self._time = time or datetime(2025, 1, 1)

    @property
    def current_time(self) -> datetime:
        return self._time

    @property
    def administrator(self) -> str:
        return self._administrator

    def get_info(self, identity: str) -> Participant:
        return self._participants.get(identity, UNREGISTERED_PARTICIPANT)

    def get_lot(self, lot_id: int) -> Lot:
        if lot_id not in self._lots:
            raise NotFound(f"Lot {lot_id} not found")
        return self._lots[lot_id]

    def get_balance(self, lot_id: int, identity: str) -> int:
        self.get_lot(lot_id)
        return self._balances.get(lot_id, {}).get(identity, 0)

    def get_holders(self, lot_id: int) -> Dict[str, int]:
        self.get_lot(lot_id)
        return {h: q for h, q in self._balances.get(lot_id, {}).items() if q != 0}

    def get_transfer(self, transfer_id: int) -> Transfer:
        if transfer_id not in self._transfers:
            raise NotFound(f"Transfer {transfer_id} not found")
        return self._transfers[transfer_id]

    def lot_ids(self) -> List[int]:
        return sorted(self._lots)

    def transfer_ids(self) -> List[int]:
        return sorted(self._transfers)
