"""
queries.py - Read-only aggregation over a SupplyChainView

Every function scans the full id range on each call; nothing is cached, so
results always reflect the current state. Output ids are strictly ascending
and free of duplicates.
"""

from __future__ import annotations
from typing import Dict, List

from .core import SupplyChainView, TransferStatus


def list_lots_for(view: SupplyChainView, identity: str) -> List[int]:
    """Lot ids created by identity or in which it holds a non-zero balance."""
    result = []
    for lot_id in view.lot_ids():
        lot = view.get_lot(lot_id)
        if lot.creator == identity or view.get_balance(lot_id, identity) != 0:
            result.append(lot_id)
    return result


def list_transfers_for(view: SupplyChainView, identity: str) -> List[int]:
    """Transfer ids where identity is the sender or the recipient."""
    return [
        transfer_id for transfer_id in view.transfer_ids()
        if view.get_transfer(transfer_id).involves(identity)
    ]


def list_pending_transfers_for(view: SupplyChainView, identity: str) -> List[int]:
    """PENDING transfer ids waiting on identity as recipient."""
    result = []
    for transfer_id in view.transfer_ids():
        transfer = view.get_transfer(transfer_id)
        if transfer.recipient == identity and transfer.status == TransferStatus.PENDING:
            result.append(transfer_id)
    return result


def holdings_of(view: SupplyChainView, identity: str) -> Dict[int, int]:
    """Map of lot id to non-zero balance held by identity, in ascending lot order."""
    holdings = {}
    for lot_id in view.lot_ids():
        balance = view.get_balance(lot_id, identity)
        if balance != 0:
            holdings[lot_id] = balance
    return holdings
