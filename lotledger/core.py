"""
Core types and pure functions for the supply-chain lot ledger.

This module provides the foundational data structures and protocols for the ledger:
1. Protocols: SupplyChainView for read-only ledger access
2. Enums: Role, ApprovalStatus, TransferStatus
3. Exceptions: LedgerError and the named failure kinds
4. Immutable data structures: Participant, Lot, Transfer
5. Role rules: the static adjacency table and pure validation helpers

All functions in this module are pure and operate on read-only views.
No function can mutate ledger state directly.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import (
    Dict, List, Optional, Protocol, FrozenSet, Tuple, Union,
    runtime_checkable,
)


# ============================================================================
# CONSTANTS
# ============================================================================

# The null identity. Never a valid participant, recipient or administrator.
ZERO_IDENTITY = "0x0000000000000000000000000000000000000000"

# Lot, transfer and participant ids are allocated from this value upwards.
# Id 0 is reserved for "none" (see UNREGISTERED_PARTICIPANT).
FIRST_ID = 1

# Default logical start time for a fresh ledger.
DEFAULT_START_TIME = datetime(1970, 1, 1)


# ============================================================================
# ENUMS
# ============================================================================

class Role(str, Enum):
    """Supply-chain stage a participant operates at."""
    PRODUCER = "producer"
    FACTORY = "factory"
    RETAILER = "retailer"
    CONSUMER = "consumer"


class ApprovalStatus(str, Enum):
    """Approval state of a participant's role request."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELED = "canceled"


class TransferStatus(str, Enum):
    """
    Status of a two-phase transfer.

    PENDING is the only non-terminal state. ACCEPTED and REJECTED are final.
    """
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


# Forward adjacency of the chain: a holder at role X may only hand units
# to a participant at ROLE_TRANSITIONS[X].
ROLE_TRANSITIONS: Dict[Role, Role] = {
    Role.PRODUCER: Role.FACTORY,
    Role.FACTORY: Role.RETAILER,
    Role.RETAILER: Role.CONSUMER,
}

# The end of the chain. Holders at this role can never transfer.
TERMINAL_ROLE = Role.CONSUMER

TERMINAL_TRANSFER_STATUSES: FrozenSet[TransferStatus] = frozenset({
    TransferStatus.ACCEPTED,
    TransferStatus.REJECTED,
})


# ============================================================================
# EXCEPTIONS
# ============================================================================

class LedgerError(Exception):
    """Base exception for all ledger-related errors."""
    pass


class NotAdministrator(LedgerError):
    """Raised when an administrator-only operation is called by anyone else."""
    pass


class NotApproved(LedgerError):
    """Raised when the caller has no record or its status is not APPROVED."""
    pass


class NotFound(LedgerError):
    """Raised when a lot, transfer or participant id does not exist."""
    pass


class InvalidInput(LedgerError):
    """Raised for empty names or roles, malformed quantities and unknown enum values."""
    pass


class InvalidAmount(InvalidInput):
    """Raised when a transfer amount is not a positive integer."""
    pass


class InvalidRecipient(LedgerError):
    """Raised when a transfer recipient is the zero identity or the sender itself."""
    pass


class RecipientUnregistered(LedgerError):
    """Raised when a transfer recipient has never requested a role."""
    pass


class TerminalRoleCannotTransfer(LedgerError):
    """Raised when a participant at the terminal role tries to send units."""
    pass


class IllegalRoleTransition(LedgerError):
    """Raised when sender and recipient roles are not adjacent in the chain."""
    pass


class InsufficientBalance(LedgerError):
    """Raised when a move would take a holder's lot balance below zero."""
    pass


class InvalidState(LedgerError):
    """Raised when resolving a transfer that is no longer PENDING."""
    pass


class NotRecipient(LedgerError):
    """Raised when someone other than the recipient tries to accept a transfer."""
    pass


class NotAuthorized(LedgerError):
    """Raised when someone other than the recipient or administrator rejects a transfer."""
    pass


class ReentrantCall(LedgerError):
    """Raised when a mutating call is made while another one is still in progress."""
    pass


# ============================================================================
# RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class Participant:
    """
    Role-approval record of one identity.

    Attributes:
        participant_id: Registry-assigned id (0 only for the unregistered sentinel).
        identity: The participant's identity (address-like string).
        role: Requested role, or None when unset.
        status: Approval status of the current role request.
        updated_at: Logical time of the last role request or status change.
    """
    participant_id: int
    identity: str
    role: Optional[Role]
    status: ApprovalStatus
    updated_at: Optional[datetime] = None

    @property
    def is_registered(self) -> bool:
        return self.participant_id != 0

    @property
    def is_approved(self) -> bool:
        return self.is_registered and self.status == ApprovalStatus.APPROVED


# Returned by lookups for identities that never requested a role.
UNREGISTERED_PARTICIPANT = Participant(
    participant_id=0,
    identity=ZERO_IDENTITY,
    role=None,
    status=ApprovalStatus.REJECTED,
)


@dataclass(frozen=True, slots=True)
class Lot:
    """
    Immutable description of a product lot.

    The holder balances are not part of this record; they live in the lot's
    entry inside LotLedger and are only moved by the transfer protocol.

    Attributes:
        lot_id: Unique id allocated at creation.
        creator: Identity that created the lot and received its full supply.
        name: Display name (never empty).
        total_supply: Units issued at creation. Fixed for the life of the lot.
        features: Free-text metadata.
        parent_id: Optional provenance link to another lot id (not validated).
        created_at: Logical creation time.
    """
    lot_id: int
    creator: str
    name: str
    total_supply: int
    features: str = ""
    parent_id: Optional[int] = None
    created_at: Optional[datetime] = None

    def __repr__(self) -> str:
        return f"Lot(#{self.lot_id} {self.name!r}, supply={self.total_supply}, creator={self.creator})"


@dataclass(frozen=True, slots=True)
class Transfer:
    """
    Record of a two-phase transfer of lot units.

    Units move from sender to recipient when the transfer is initiated.
    Rejection moves them back; acceptance only closes the record.

    Attributes:
        transfer_id: Unique id allocated at initiation.
        sender: Identity the units were debited from.
        recipient: Identity the units were credited to.
        lot_id: Lot the units belong to.
        amount: Number of units moved.
        created_at: Logical initiation time.
        status: Current TransferStatus.
        resolved_at: Logical time the transfer reached a terminal status.
        resolved_by: Identity that accepted or rejected the transfer.
    """
    transfer_id: int
    sender: str
    recipient: str
    lot_id: int
    amount: int
    created_at: Optional[datetime] = None
    status: TransferStatus = TransferStatus.PENDING
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status == TransferStatus.PENDING

    def involves(self, identity: str) -> bool:
        return identity == self.sender or identity == self.recipient

    def __repr__(self) -> str:
        return (
            f"Transfer(#{self.transfer_id} lot={self.lot_id} {self.amount}: "
            f"{self.sender}→{self.recipient} [{self.status.value}])"
        )


# ============================================================================
# PROTOCOLS
# ============================================================================

@runtime_checkable
class SupplyChainView(Protocol):
    """
    Read-only interface to ledger state.

    Validators and queries accept a SupplyChainView to declare their
    read-only intent. SupplyChainLedger implements this protocol; tests
    use FakeView for a truly immutable implementation.
    """

    @property
    def current_time(self) -> datetime:
        """Return the current logical time of the ledger."""
        ...

    @property
    def administrator(self) -> str:
        """Return the fixed administrator identity."""
        ...

    def get_info(self, identity: str) -> Participant:
        """Return the participant record, or UNREGISTERED_PARTICIPANT."""
        ...

    def get_lot(self, lot_id: int) -> Lot:
        """Return the lot record. Raises NotFound for unknown ids."""
        ...

    def get_balance(self, lot_id: int, identity: str) -> int:
        """
        Return the quantity of a lot held by an identity.

        Returns 0 for identities with no recorded balance.
        Raises NotFound if the lot does not exist.
        """
        ...

    def get_holders(self, lot_id: int) -> Dict[str, int]:
        """Return all non-zero balances of a lot."""
        ...

    def get_transfer(self, transfer_id: int) -> Transfer:
        """Return the transfer record. Raises NotFound for unknown ids."""
        ...

    def lot_ids(self) -> List[int]:
        """Return all lot ids in ascending order."""
        ...

    def transfer_ids(self) -> List[int]:
        """Return all transfer ids in ascending order."""
        ...


# ============================================================================
# PURE HELPERS
# ============================================================================

def is_zero_identity(identity: Optional[str]) -> bool:
    """
    True for None, blank strings and ZERO_IDENTITY.

    Raises:
        InvalidInput: If identity is neither None nor a string.
    """
    if identity is None:
        return True
    if not isinstance(identity, str):
        raise InvalidInput(f"Identity must be a string, got {type(identity).__name__}")
    return not identity.strip() or identity == ZERO_IDENTITY


def is_quantity(value) -> bool:
    """True for non-negative ints. bool is excluded even though it subclasses int."""
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def parse_role(role: Union[Role, str, None]) -> Role:
    """
    Coerce a role given as a Role, its value or its name.

    Raises:
        InvalidInput: If role is empty or names no known role.
    """
    if isinstance(role, Role):
        return role
    if not isinstance(role, str) or not role.strip():
        raise InvalidInput("Role cannot be empty")
    key = role.strip().lower()
    for candidate in Role:
        if candidate.value == key:
            return candidate
    raise InvalidInput(f"Unknown role: {role!r}")


def parse_status(status: Union[ApprovalStatus, str, None]) -> ApprovalStatus:
    """
    Coerce an approval status given as an ApprovalStatus, its value or its name.

    Raises:
        InvalidInput: If status names no known approval status.
    """
    if isinstance(status, ApprovalStatus):
        return status
    if isinstance(status, str):
        key = status.strip().lower()
        for candidate in ApprovalStatus:
            if candidate.value == key:
                return candidate
    raise InvalidInput(f"Unknown approval status: {status!r}")


def is_legal_transition(sender_role: Optional[Role], recipient_role: Optional[Role]) -> bool:
    """Return True if sender_role may hand units directly to recipient_role."""
    if sender_role is None or recipient_role is None:
        return False
    return ROLE_TRANSITIONS.get(sender_role) == recipient_role


def check_role_transition(sender: Participant, recipient: Participant) -> None:
    """
    Enforce the fixed forward adjacency of the chain.

    Raises:
        TerminalRoleCannotTransfer: If the sender sits at the terminal role.
        IllegalRoleTransition: If the pair is not one of the adjacent steps.
    """
    if sender.role == TERMINAL_ROLE:
        raise TerminalRoleCannotTransfer(
            f"{sender.identity} holds terminal role {TERMINAL_ROLE.value} and cannot transfer"
        )
    if not is_legal_transition(sender.role, recipient.role):
        sender_role = sender.role.value if sender.role else None
        recipient_role = recipient.role.value if recipient.role else None
        raise IllegalRoleTransition(
            f"Transfer from {sender_role} to {recipient_role} is not allowed"
        )


def legal_pairs() -> Tuple[Tuple[Role, Role], ...]:
    """All (sender_role, recipient_role) pairs allowed to transfer, in chain order."""
    return tuple(ROLE_TRANSITIONS.items())
