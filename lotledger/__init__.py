"""
lotledger - Supply-Chain Lot Ledger

Tracks ownership of fungible product lots as they move Producer -> Factory ->
Retailer -> Consumer, behind a role-approval workflow and a two-phase
(propose, then accept or reject) transfer protocol.

Usage:
    from lotledger import SupplyChainLedger, Role, ApprovalStatus

    ledger = SupplyChainLedger("chain", administrator="admin")
    ledger.request_role("farm", Role.PRODUCER)
    ledger.request_role("mill", Role.FACTORY)
    ledger.set_status("admin", "farm", ApprovalStatus.APPROVED)
    ledger.set_status("admin", "mill", ApprovalStatus.APPROVED)

    lot_id = ledger.create_lot("farm", "Wheat 2025", 100, features="organic")

    # Units move to the recipient as soon as the transfer is initiated
    transfer_id = ledger.initiate_transfer("farm", "mill", lot_id, 40)
    ledger.accept_transfer("mill", transfer_id)      # or reject_transfer() to refund
"""

# Core types
from .core import (
    SupplyChainView,
    Participant,
    Lot,
    Transfer,
    Role,
    ApprovalStatus,
    TransferStatus,
    LedgerError,
    NotAdministrator,
    NotApproved,
    NotFound,
    InvalidInput,
    InvalidAmount,
    InvalidRecipient,
    RecipientUnregistered,
    TerminalRoleCannotTransfer,
    IllegalRoleTransition,
    InsufficientBalance,
    InvalidState,
    NotRecipient,
    NotAuthorized,
    ReentrantCall,
    ROLE_TRANSITIONS,
    TERMINAL_ROLE,
    UNREGISTERED_PARTICIPANT,
    ZERO_IDENTITY,
    is_legal_transition,
    parse_role,
    parse_status,
)

# Components
from .registry import IdentityRegistry
from .lots import LotLedger
from .transfers import (
    TransferProtocol,
    validate_initiation,
    validate_acceptance,
    validate_rejection,
)

# Queries
from .queries import (
    list_lots_for,
    list_transfers_for,
    list_pending_transfers_for,
    holdings_of,
)

# Notifications
from .notifications import (
    Notification,
    NotificationType,
    NotificationBus,
)

# Ledger
from .ledger import SupplyChainLedger

__all__ = [
    # Core
    'SupplyChainView', 'Participant', 'Lot', 'Transfer',
    'Role', 'ApprovalStatus', 'TransferStatus',
    'LedgerError', 'NotAdministrator', 'NotApproved', 'NotFound',
    'InvalidInput', 'InvalidAmount', 'InvalidRecipient', 'RecipientUnregistered',
    'TerminalRoleCannotTransfer', 'IllegalRoleTransition', 'InsufficientBalance',
    'InvalidState', 'NotRecipient', 'NotAuthorized', 'ReentrantCall',
    'ROLE_TRANSITIONS', 'TERMINAL_ROLE', 'UNREGISTERED_PARTICIPANT', 'ZERO_IDENTITY',
    'is_legal_transition', 'parse_role', 'parse_status',
    # Components
    'IdentityRegistry', 'LotLedger', 'TransferProtocol',
    'validate_initiation', 'validate_acceptance', 'validate_rejection',
    # Queries
    'list_lots_for', 'list_transfers_for', 'list_pending_transfers_for', 'holdings_of',
    # Notifications
    'Notification', 'NotificationType', 'NotificationBus',
    # Ledger
    'SupplyChainLedger',
]

__version__ = '1.0.0'
