"""
test_transfer_protocol.py - Tests for the two-phase transfer state machine

Tests:
- Pure validators against a FakeView
- initiate_transfer: every failure kind, in order, and the escrow effect
- accept_transfer: state, caller and role re-validation
- reject_transfer: refund, caller rules and the recipient-balance guard
"""

import pytest
from datetime import datetime

from lotledger import (
    Participant, Lot, Transfer, Role, ApprovalStatus, TransferStatus,
    NotificationType, ZERO_IDENTITY,
    validate_initiation, validate_acceptance, validate_rejection,
    InvalidAmount, InvalidRecipient, InsufficientBalance, InvalidState,
    IllegalRoleTransition, NotApproved, NotAuthorized, NotFound, NotRecipient,
    RecipientUnregistered, TerminalRoleCannotTransfer,
)

from tests.fake_view import FakeView
from tests.chain_helpers import (
    ADMIN, PRODUCER, FACTORY, RETAILER, CONSUMER, approve, snapshot,
)


def _participant(pid, identity, role, status=ApprovalStatus.APPROVED):
    return Participant(pid, identity, role, status)


@pytest.fixture
def view():
    """Producer holding 100 of lot 1, with an approved factory."""
    return FakeView(
        participants=[
            _participant(1, PRODUCER, Role.PRODUCER),
            _participant(2, FACTORY, Role.FACTORY),
            _participant(3, RETAILER, Role.RETAILER, ApprovalStatus.PENDING),
        ],
        lots=[Lot(1, PRODUCER, "Wheat", 100)],
        balances={1: {PRODUCER: 100}},
    )


# =============================================================================
# PURE VALIDATORS
# =============================================================================

class TestValidateInitiation:

    def test_valid(self, view):
        sender, recipient = validate_initiation(view, PRODUCER, FACTORY, 1, 100)
        assert sender.identity == PRODUCER
        assert recipient.identity == FACTORY

    @pytest.mark.parametrize("recipient", [ZERO_IDENTITY, "", PRODUCER, None, 123, b"mill"])
    def test_invalid_recipient(self, view, recipient):
        with pytest.raises(InvalidRecipient):
            validate_initiation(view, PRODUCER, recipient, 1, 10)

    @pytest.mark.parametrize("amount", [0, -5, 1.5, True, "10", None])
    def test_invalid_amount(self, view, amount):
        with pytest.raises(InvalidAmount):
            validate_initiation(view, PRODUCER, FACTORY, 1, amount)

    def test_unknown_lot(self, view):
        with pytest.raises(NotFound):
            validate_initiation(view, PRODUCER, FACTORY, 2, 10)

    def test_unapproved_sender(self, view):
        with pytest.raises(NotApproved):
            validate_initiation(view, RETAILER, CONSUMER, 1, 10)

    def test_unregistered_recipient(self, view):
        with pytest.raises(RecipientUnregistered):
            validate_initiation(view, PRODUCER, "ghost", 1, 10)

    def test_recipient_only_needs_a_record(self, view):
        """A pending recipient is acceptable; only the sender is gated."""
        v = FakeView(
            participants=[
                _participant(1, FACTORY, Role.FACTORY),
                _participant(2, RETAILER, Role.RETAILER, ApprovalStatus.PENDING),
            ],
            lots=[Lot(1, FACTORY, "Flour", 5)],
            balances={1: {FACTORY: 5}},
        )
        validate_initiation(v, FACTORY, RETAILER, 1, 5)

    def test_insufficient_balance(self, view):
        with pytest.raises(InsufficientBalance):
            validate_initiation(view, PRODUCER, FACTORY, 1, 101)

    def test_check_order_recipient_before_amount(self, view):
        with pytest.raises(InvalidRecipient):
            validate_initiation(view, PRODUCER, PRODUCER, 99, 0)

    def test_check_order_amount_before_lot(self, view):
        with pytest.raises(InvalidAmount):
            validate_initiation(view, PRODUCER, FACTORY, 99, 0)

    def test_check_order_lot_before_approval(self, view):
        with pytest.raises(NotFound):
            validate_initiation(view, "ghost", FACTORY, 99, 1)

    def test_check_order_roles_before_balance(self, view):
        with pytest.raises(IllegalRoleTransition):
            validate_initiation(view, PRODUCER, RETAILER, 1, 1000)


class TestValidateResolution:

    def test_acceptance_requires_pending(self, view):
        done = Transfer(1, PRODUCER, FACTORY, 1, 10, status=TransferStatus.ACCEPTED)
        with pytest.raises(InvalidState):
            validate_acceptance(view, done, FACTORY)

    def test_acceptance_requires_recipient(self, view):
        pending = Transfer(1, PRODUCER, FACTORY, 1, 10)
        with pytest.raises(NotRecipient):
            validate_acceptance(view, pending, ADMIN)

    def test_rejection_by_administrator(self, view):
        pending = Transfer(1, FACTORY, PRODUCER, 1, 10)
        validate_rejection(view, pending, ADMIN)

    def test_rejection_by_stranger(self, view):
        pending = Transfer(1, FACTORY, PRODUCER, 1, 10)
        with pytest.raises(NotAuthorized):
            validate_rejection(view, pending, RETAILER)

    def test_rejection_requires_recipient_balance(self, view):
        pending = Transfer(1, PRODUCER, FACTORY, 1, 10)
        with pytest.raises(InsufficientBalance):
            validate_rejection(view, pending, FACTORY)


# =============================================================================
# INITIATE
# =============================================================================

class TestInitiateTransfer:

    def test_escrow_at_initiation(self, lot_ledger):
        """Units leave the sender and reach the recipient immediately."""
        transfer_id = lot_ledger.initiate_transfer(PRODUCER, FACTORY, 1, 40)

        assert transfer_id == 1
        assert lot_ledger.get_balance(1, PRODUCER) == 60
        assert lot_ledger.get_balance(1, FACTORY) == 40
        transfer = lot_ledger.get_transfer(transfer_id)
        assert transfer.status == TransferStatus.PENDING
        assert transfer.sender == PRODUCER
        assert transfer.recipient == FACTORY
        assert transfer.amount == 40
        assert transfer.created_at == lot_ledger.current_time

    def test_emits_transfer_requested(self, lot_ledger):
        lot_ledger.initiate_transfer(PRODUCER, FACTORY, 1, 40)
        last = lot_ledger.notification_log[-1]
        assert last.kind == NotificationType.TRANSFER_REQUESTED
        assert last.params_dict == {
            "transfer_id": 1, "sender": PRODUCER, "recipient": FACTORY,
            "lot_id": 1, "amount": 40,
        }

    def test_whole_balance_can_move(self, lot_ledger):
        lot_ledger.initiate_transfer(PRODUCER, FACTORY, 1, 100)
        assert lot_ledger.get_holders(1) == {FACTORY: 100}

    def test_escrowed_units_are_not_spendable(self, lot_ledger):
        lot_ledger.initiate_transfer(PRODUCER, FACTORY, 1, 70)
        with pytest.raises(InsufficientBalance):
            lot_ledger.initiate_transfer(PRODUCER, FACTORY, 1, 31)

    def test_insufficient_balance_leaves_state(self, lot_ledger):
        before = snapshot(lot_ledger)
        with pytest.raises(InsufficientBalance):
            lot_ledger.initiate_transfer(PRODUCER, FACTORY, 1, 101)
        assert snapshot(lot_ledger) == before
        assert lot_ledger.next_transfer_id == 1

    @pytest.mark.parametrize("sender, recipient", [
        (PRODUCER, RETAILER),
        (PRODUCER, CONSUMER),
        (FACTORY, PRODUCER),
        (FACTORY, CONSUMER),
        (RETAILER, PRODUCER),
        (RETAILER, FACTORY),
    ])
    def test_illegal_pairs(self, chain_ledger, sender, recipient):
        lot_id = chain_ledger.create_lot(sender, "Stock", 10)
        with pytest.raises(IllegalRoleTransition):
            chain_ledger.initiate_transfer(sender, recipient, lot_id, 1)

    def test_same_role_pair_is_illegal(self, chain_ledger):
        approve(chain_ledger, "farm2", Role.PRODUCER)
        lot_id = chain_ledger.create_lot(PRODUCER, "Wheat", 10)
        with pytest.raises(IllegalRoleTransition):
            chain_ledger.initiate_transfer(PRODUCER, "farm2", lot_id, 1)

    @pytest.mark.parametrize("recipient", [PRODUCER, FACTORY, RETAILER])
    def test_consumer_cannot_transfer(self, chain_ledger, recipient):
        lot_id = chain_ledger.create_lot(CONSUMER, "Leftovers", 5)
        with pytest.raises(TerminalRoleCannotTransfer):
            chain_ledger.initiate_transfer(CONSUMER, recipient, lot_id, 1)

    def test_demoted_sender(self, lot_ledger):
        lot_ledger.set_status(ADMIN, PRODUCER, ApprovalStatus.REJECTED)
        with pytest.raises(NotApproved):
            lot_ledger.initiate_transfer(PRODUCER, FACTORY, 1, 10)

    def test_unregistered_recipient(self, lot_ledger):
        with pytest.raises(RecipientUnregistered):
            lot_ledger.initiate_transfer(PRODUCER, "ghost", 1, 10)

    def test_unknown_lot(self, lot_ledger):
        with pytest.raises(NotFound):
            lot_ledger.initiate_transfer(PRODUCER, FACTORY, 2, 10)


# =============================================================================
# ACCEPT
# =============================================================================

class TestAcceptTransfer:

    def test_accept_keeps_balances(self, lot_ledger):
        lot_ledger.initiate_transfer(PRODUCER, FACTORY, 1, 40)
        lot_ledger.advance_time(datetime(2025, 1, 5))

        transfer = lot_ledger.accept_transfer(FACTORY, 1)

        assert transfer.status == TransferStatus.ACCEPTED
        assert transfer.resolved_by == FACTORY
        assert transfer.resolved_at == datetime(2025, 1, 5)
        assert lot_ledger.get_transfer(1) == transfer
        assert lot_ledger.get_holders(1) == {PRODUCER: 60, FACTORY: 40}

    def test_emits_transfer_accepted(self, lot_ledger):
        lot_ledger.initiate_transfer(PRODUCER, FACTORY, 1, 40)
        lot_ledger.accept_transfer(FACTORY, 1)
        last = lot_ledger.notification_log[-1]
        assert last.kind == NotificationType.TRANSFER_ACCEPTED
        assert last.params_dict == {"transfer_id": 1, "lot_id": 1, "recipient": FACTORY}

    def test_unknown_transfer(self, lot_ledger):
        with pytest.raises(NotFound):
            lot_ledger.accept_transfer(FACTORY, 1)

    @pytest.mark.parametrize("caller", [PRODUCER, ADMIN, RETAILER])
    def test_only_recipient_accepts(self, lot_ledger, caller):
        lot_ledger.initiate_transfer(PRODUCER, FACTORY, 1, 40)
        with pytest.raises(NotRecipient):
            lot_ledger.accept_transfer(caller, 1)
        assert lot_ledger.get_transfer(1).is_pending

    def test_role_change_blocks_acceptance(self, lot_ledger):
        """Roles are re-read at acceptance; moved units stay where they are."""
        lot_ledger.initiate_transfer(PRODUCER, FACTORY, 1, 40)
        lot_ledger.request_role(FACTORY, Role.CONSUMER)
        before = snapshot(lot_ledger)

        with pytest.raises(IllegalRoleTransition):
            lot_ledger.accept_transfer(FACTORY, 1)

        assert snapshot(lot_ledger) == before
        assert lot_ledger.get_balance(1, FACTORY) == 40

    def test_recipient_approval_not_required(self, lot_ledger):
        lot_ledger.initiate_transfer(PRODUCER, FACTORY, 1, 40)
        lot_ledger.set_status(ADMIN, FACTORY, ApprovalStatus.PENDING)
        assert lot_ledger.accept_transfer(FACTORY, 1).status == TransferStatus.ACCEPTED


# =============================================================================
# REJECT
# =============================================================================

class TestRejectTransfer:

    def test_reject_refunds_sender(self, lot_ledger):
        lot_ledger.initiate_transfer(PRODUCER, FACTORY, 1, 40)
        transfer = lot_ledger.reject_transfer(FACTORY, 1)

        assert transfer.status == TransferStatus.REJECTED
        assert transfer.resolved_by == FACTORY
        assert lot_ledger.get_balance(1, PRODUCER) == 100
        assert lot_ledger.get_balance(1, FACTORY) == 0

    def test_administrator_can_force_reject(self, lot_ledger):
        lot_ledger.initiate_transfer(PRODUCER, FACTORY, 1, 40)
        transfer = lot_ledger.reject_transfer(ADMIN, 1)
        assert transfer.resolved_by == ADMIN
        assert lot_ledger.get_holders(1) == {PRODUCER: 100}

    def test_emits_transfer_rejected(self, lot_ledger):
        lot_ledger.initiate_transfer(PRODUCER, FACTORY, 1, 40)
        lot_ledger.reject_transfer(ADMIN, 1)
        last = lot_ledger.notification_log[-1]
        assert last.kind == NotificationType.TRANSFER_REJECTED
        assert last.params_dict == {
            "transfer_id": 1, "lot_id": 1, "sender": PRODUCER, "resolved_by": ADMIN,
        }

    @pytest.mark.parametrize("caller", [PRODUCER, RETAILER, "ghost"])
    def test_sender_and_strangers_cannot_reject(self, lot_ledger, caller):
        lot_ledger.initiate_transfer(PRODUCER, FACTORY, 1, 40)
        before = snapshot(lot_ledger)
        with pytest.raises(NotAuthorized):
            lot_ledger.reject_transfer(caller, 1)
        assert snapshot(lot_ledger) == before

    def test_reject_after_units_moved_on(self, lot_ledger):
        """The refund needs the recipient to still hold the units."""
        lot_ledger.initiate_transfer(PRODUCER, FACTORY, 1, 40)
        lot_ledger.initiate_transfer(FACTORY, RETAILER, 1, 30)
        before = snapshot(lot_ledger)

        with pytest.raises(InsufficientBalance):
            lot_ledger.reject_transfer(FACTORY, 1)
        assert snapshot(lot_ledger) == before

        lot_ledger.reject_transfer(RETAILER, 2)
        lot_ledger.reject_transfer(FACTORY, 1)
        assert lot_ledger.get_holders(1) == {PRODUCER: 100}


# =============================================================================
# TERMINAL STATES
# =============================================================================

class TestTerminalStates:

    @pytest.mark.parametrize("close", ["accept", "reject"])
    def test_resolved_transfers_stay_resolved(self, lot_ledger, close):
        lot_ledger.initiate_transfer(PRODUCER, FACTORY, 1, 40)
        if close == "accept":
            lot_ledger.accept_transfer(FACTORY, 1)
        else:
            lot_ledger.reject_transfer(FACTORY, 1)
        before = snapshot(lot_ledger)

        with pytest.raises(InvalidState):
            lot_ledger.accept_transfer(FACTORY, 1)
        with pytest.raises(InvalidState):
            lot_ledger.reject_transfer(FACTORY, 1)
        with pytest.raises(InvalidState):
            lot_ledger.reject_transfer(ADMIN, 1)

        assert snapshot(lot_ledger) == before

    def test_state_checked_before_caller(self, lot_ledger):
        lot_ledger.initiate_transfer(PRODUCER, FACTORY, 1, 40)
        lot_ledger.accept_transfer(FACTORY, 1)
        with pytest.raises(InvalidState):
            lot_ledger.accept_transfer("ghost", 1)
        with pytest.raises(InvalidState):
            lot_ledger.reject_transfer("ghost", 1)
