"""
lots.py - Lot Ledger

Owns every Lot record and, per lot, the map from holder identity to held
quantity. Each lot's holder map belongs to that lot alone.

Conservation:
    For every lot L, at all times:  sum(holders(L).values()) == L.total_supply

The full supply is credited to the creator at creation. After that the only
way a balance changes is _move(), which the transfer protocol calls with its
checks already done.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from .core import (
    Lot, FIRST_ID,
    InvalidInput, InsufficientBalance, NotFound,
    is_quantity,
)
from .registry import IdentityRegistry


@dataclass(slots=True)
class _LotEntry:
    """A lot record together with the holder map it owns."""
    lot: Lot
    holders: Dict[str, int] = field(default_factory=dict)


class LotLedger:
    """
    Arena of lots keyed by lot id.

    Reads the registry for the approval gate; never writes to it.
    """

    def __init__(self, registry: IdentityRegistry):
        self._registry = registry
        self._entries: Dict[int, _LotEntry] = {}
        self._next_id: int = FIRST_ID

    @property
    def next_lot_id(self) -> int:
        """Id the next created lot will receive."""
        return self._next_id

    # ========================================================================
    # READ
    # ========================================================================

    def has_lot(self, lot_id: int) -> bool:
        return lot_id in self._entries

    def _entry(self, lot_id: int) -> _LotEntry:
        entry = self._entries.get(lot_id)
        if entry is None:
            raise NotFound(f"Lot {lot_id} not found")
        return entry

    def get_lot(self, lot_id: int) -> Lot:
        """
        Raises:
            NotFound: If lot_id was never created.
        """
        return self._entry(lot_id).lot

    def get_balance(self, lot_id: int, holder: str) -> int:
        """
        Quantity of lot_id held by holder (0 if nothing recorded).

        Raises:
            NotFound: If lot_id was never created.
        """
        return self._entry(lot_id).holders.get(holder, 0)

    def get_holders(self, lot_id: int) -> Dict[str, int]:
        """Copy of the non-zero balances of a lot."""
        return {h: q for h, q in self._entry(lot_id).holders.items() if q != 0}

    def total_held(self, lot_id: int) -> int:
        """Sum of all holder balances of a lot, for conservation audits."""
        return sum(self._entry(lot_id).holders.values())

    def lot_ids(self) -> List[int]:
        return sorted(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    # ========================================================================
    # MUTATE
    # ========================================================================

    def create_lot(
        self,
        creator: str,
        name: str,
        total_supply: int,
        features: str = "",
        parent_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Lot:
        """
        Create a lot and credit its whole supply to the creator.

        A supply of zero is allowed (placeholder lot). parent_id is stored as
        given; whether it names an existing lot is the caller's concern.

        Raises:
            NotApproved: If creator does not pass the approval gate.
            InvalidInput: If name is empty, total_supply is not a non-negative
                int, features is not a string, or parent_id is malformed.
        """
        self._registry.require_approved(creator)
        if not isinstance(name, str) or not name.strip():
            raise InvalidInput("Lot name cannot be empty")
        if not is_quantity(total_supply):
            raise InvalidInput(f"Total supply must be a non-negative integer, got {total_supply!r}")
        if features is None:
            features = ""
        if not isinstance(features, str):
            raise InvalidInput(f"Features must be text, got {type(features).__name__}")
        if parent_id is not None and not is_quantity(parent_id):
            raise InvalidInput(f"Parent lot id must be a non-negative integer, got {parent_id!r}")

        lot = Lot(
            lot_id=self._next_id,
            creator=creator,
            name=name,
            total_supply=total_supply,
            features=features,
            parent_id=parent_id,
            created_at=now,
        )
        self._entries[lot.lot_id] = _LotEntry(lot=lot, holders={creator: total_supply})
        self._next_id += 1
        return lot

    def _move(self, lot_id: int, source: str, dest: str, amount: int) -> None:
        """
        Move amount units of a lot from source to dest.

        Only called by TransferProtocol after its own validation. The balance
        is re-checked before either side is touched.
        """
        holders = self._entry(lot_id).holders
        available = holders.get(source, 0)
        if available < amount:
            raise InsufficientBalance(
                f"Lot {lot_id}: {source} holds {available}, cannot move {amount}"
            )
        holders[source] = available - amount
        holders[dest] = holders.get(dest, 0) + amount
        # Emptied holders are dropped
        if holders[source] == 0:
            del holders[source]

    def copy(self, registry: IdentityRegistry) -> LotLedger:
        """Independent copy bound to the given registry."""
        cloned = LotLedger(registry)
        cloned._entries = {
            lot_id: _LotEntry(lot=entry.lot, holders=dict(entry.holders))
            for lot_id, entry in self._entries.items()
        }
        cloned._next_id = self._next_id
        return cloned
