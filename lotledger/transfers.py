"""
transfers.py - Two-Phase Transfer Protocol

=== STATE MACHINE ===

    initiate  ->  PENDING
    PENDING   --accept (recipient)-------------->  ACCEPTED   (final)
    PENDING   --reject (recipient or admin)----->  REJECTED   (final)

=== ESCROW-AT-INITIATION ===

Units leave the sender and reach the recipient the moment a transfer is
initiated. PENDING is an audit label, not a custody state:

    initiate:  sender -= amount, recipient += amount
    accept:    no balance change
    reject:    recipient -= amount, sender += amount

Initiate followed by reject therefore leaves every balance where it was.

=== PURE VALIDATORS ===

    validate_initiation(view, sender, recipient, lot_id, amount)
    validate_acceptance(view, transfer, caller)
    validate_rejection(view, transfer, caller)

Each raises the first failing check's named error and never mutates, so
TransferProtocol can run every check before its single commit.
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from .core import (
    SupplyChainView, Participant, Transfer, TransferStatus, FIRST_ID,
    InvalidAmount, InvalidRecipient, InsufficientBalance, InvalidState,
    IllegalRoleTransition, NotApproved, NotAuthorized, NotFound, NotRecipient,
    RecipientUnregistered,
    check_role_transition, is_legal_transition, is_quantity, is_zero_identity,
)
from .lots import LotLedger


# =============================================================================
# PURE VALIDATORS
# =============================================================================

def validate_initiation(
    view: SupplyChainView,
    sender: str,
    recipient: str,
    lot_id: int,
    amount: int,
) -> Tuple[Participant, Participant]:
    """
    Check that sender may move amount units of lot_id to recipient.

    Checks run in a fixed order and the first failure wins.

    Returns:
        (sender_record, recipient_record)

    Raises:
        InvalidRecipient: recipient is the zero identity or the sender.
        InvalidAmount: amount is not a positive integer.
        NotFound: lot_id does not exist.
        NotApproved: sender does not pass the approval gate.
        RecipientUnregistered: recipient never requested a role.
        TerminalRoleCannotTransfer: sender holds the terminal role.
        IllegalRoleTransition: the role pair is not an adjacent chain step.
        InsufficientBalance: sender holds fewer than amount units of the lot.
    """
    if not isinstance(recipient, str):
        raise InvalidRecipient(f"Recipient must be an identity string, got {recipient!r}")
    if is_zero_identity(recipient):
        raise InvalidRecipient("Recipient cannot be the zero identity")
    if recipient == sender:
        raise InvalidRecipient(f"{sender} cannot transfer to itself")
    if not is_quantity(amount) or amount == 0:
        raise InvalidAmount(f"Transfer amount must be a positive integer, got {amount!r}")
    view.get_lot(lot_id)

    sender_info = view.get_info(sender)
    if not sender_info.is_approved:
        raise NotApproved(f"{sender} is not an approved participant")
    recipient_info = view.get_info(recipient)
    if not recipient_info.is_registered:
        raise RecipientUnregistered(f"Recipient {recipient} is not registered")

    check_role_transition(sender_info, recipient_info)

    balance = view.get_balance(lot_id, sender)
    if balance < amount:
        raise InsufficientBalance(
            f"Lot {lot_id}: {sender} holds {balance}, cannot transfer {amount}"
        )
    return sender_info, recipient_info


def _require_pending(transfer: Transfer) -> None:
    if not transfer.is_pending:
        raise InvalidState(
            f"Transfer {transfer.transfer_id} is {transfer.status.value}, not pending"
        )


def validate_acceptance(view: SupplyChainView, transfer: Transfer, caller: str) -> None:
    """
    Check that caller may accept transfer.

    Roles are re-read, not taken from initiation time: if either side
    changed role since, the pair must still be a legal chain step.

    Raises:
        InvalidState: transfer is not PENDING.
        NotRecipient: caller is not the recipient.
        IllegalRoleTransition: current roles are no longer an adjacent step.
    """
    _require_pending(transfer)
    if caller != transfer.recipient:
        raise NotRecipient(
            f"Only {transfer.recipient} can accept transfer {transfer.transfer_id}"
        )
    sender_role = view.get_info(transfer.sender).role
    recipient_role = view.get_info(transfer.recipient).role
    if not is_legal_transition(sender_role, recipient_role):
        raise IllegalRoleTransition(
            f"Transfer {transfer.transfer_id}: "
            f"{sender_role.value if sender_role else None} to "
            f"{recipient_role.value if recipient_role else None} is no longer allowed"
        )


def validate_rejection(view: SupplyChainView, transfer: Transfer, caller: str) -> None:
    """
    Check that caller may reject transfer and that the refund can be made.

    Raises:
        InvalidState: transfer is not PENDING.
        NotAuthorized: caller is neither the recipient nor the administrator.
        InsufficientBalance: recipient no longer holds the transferred units.
    """
    _require_pending(transfer)
    if caller != transfer.recipient and caller != view.administrator:
        raise NotAuthorized(
            f"{caller} cannot reject transfer {transfer.transfer_id}"
        )
    held = view.get_balance(transfer.lot_id, transfer.recipient)
    if held < transfer.amount:
        raise InsufficientBalance(
            f"Transfer {transfer.transfer_id}: recipient holds {held} of lot "
            f"{transfer.lot_id}, cannot refund {transfer.amount}"
        )


# =============================================================================
# PROTOCOL
# =============================================================================

class TransferProtocol:
    """
    Owner of all Transfer records.

    Reads participant data through the view it is handed and moves
    balances in the LotLedger it was built with.
    """

    def __init__(self, lots: LotLedger):
        self._lots = lots
        self._transfers: Dict[int, Transfer] = {}
        self._next_id: int = FIRST_ID

    @property
    def next_transfer_id(self) -> int:
        """Id the next initiated transfer will receive."""
        return self._next_id

    def get_transfer(self, transfer_id: int) -> Transfer:
        """
        Raises:
            NotFound: If transfer_id was never issued.
        """
        transfer = self._transfers.get(transfer_id)
        if transfer is None:
            raise NotFound(f"Transfer {transfer_id} not found")
        return transfer

    def transfer_ids(self) -> List[int]:
        return sorted(self._transfers)

    def __len__(self) -> int:
        return len(self._transfers)

    def initiate(
        self,
        view: SupplyChainView,
        sender: str,
        recipient: str,
        lot_id: int,
        amount: int,
        now: Optional[datetime] = None,
    ) -> Transfer:
        """Validate, move the units to the recipient and open a PENDING transfer."""
        validate_initiation(view, sender, recipient, lot_id, amount)

        transfer = Transfer(
            transfer_id=self._next_id,
            sender=sender,
            recipient=recipient,
            lot_id=lot_id,
            amount=amount,
            created_at=now,
        )
        self._lots._move(lot_id, sender, recipient, amount)
        self._transfers[transfer.transfer_id] = transfer
        self._next_id += 1
        return transfer

    def accept(
        self,
        view: SupplyChainView,
        transfer_id: int,
        caller: str,
        now: Optional[datetime] = None,
    ) -> Transfer:
        """Close a PENDING transfer as ACCEPTED. Balances are not touched."""
        transfer = self.get_transfer(transfer_id)
        validate_acceptance(view, transfer, caller)
        return self._resolve(transfer, TransferStatus.ACCEPTED, caller, now)

    def reject(
        self,
        view: SupplyChainView,
        transfer_id: int,
        caller: str,
        now: Optional[datetime] = None,
    ) -> Transfer:
        """Refund a PENDING transfer to its sender and close it as REJECTED."""
        transfer = self.get_transfer(transfer_id)
        validate_rejection(view, transfer, caller)
        self._lots._move(transfer.lot_id, transfer.recipient, transfer.sender, transfer.amount)
        return self._resolve(transfer, TransferStatus.REJECTED, caller, now)

    def _resolve(
        self,
        transfer: Transfer,
        status: TransferStatus,
        caller: str,
        now: Optional[datetime],
    ) -> Transfer:
        resolved = replace(transfer, status=status, resolved_at=now, resolved_by=caller)
        self._transfers[transfer.transfer_id] = resolved
        return resolved

    def copy(self, lots: LotLedger) -> TransferProtocol:
        """Independent copy bound to the given LotLedger."""
        cloned = TransferProtocol(lots)
        cloned._transfers = dict(self._transfers)
        cloned._next_id = self._next_id
        return cloned
