"""
ledger.py - Supply-Chain Lot Ledger

The SupplyChainLedger class is the single entry point for callers. It wires
the identity registry, the lot ledger and the transfer protocol together and
is the only place their mutating methods are called from.

Key responsibilities:
    - Implements SupplyChainView for read-only access by validators and queries
    - Supplies the caller identity and the fixed administrator to every check
    - Runs each mutating call as one exclusive, all-or-nothing unit
    - Stamps records with the ledger's logical time
    - Publishes a notification for every committed change
"""

from __future__ import annotations
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Union
import threading

from .core import (
    # Types
    Participant, Lot, Transfer, Role, ApprovalStatus,
    # Constants
    DEFAULT_START_TIME,
    # Exceptions
    LedgerError, NotAdministrator, ReentrantCall,
    # Helpers
    is_zero_identity,
)
from .registry import IdentityRegistry
from .lots import LotLedger
from .transfers import TransferProtocol
from .notifications import Notification, NotificationBus, NotificationType, Subscriber
from . import queries


class SupplyChainLedger:
    """
    Ledger of product lots moving Producer -> Factory -> Retailer -> Consumer.

    Design Principles:
        - Check everything, then commit: a failing call leaves balances,
          records, id counters and the notification log untouched.
        - One call at a time: mutating calls hold a ledger-wide guard for
          their whole duration. A second mutating call from the same thread
          while the guard is held raises ReentrantCall; calls from other
          threads wait their turn.
        - Reads take the same guard, so no reader ever sees a lot between
          the debit and the credit of a move.

    Example:
        ledger = SupplyChainLedger("chain", administrator="admin")
        ledger.request_role("farm", Role.PRODUCER)
        ledger.request_role("mill", Role.FACTORY)
        ledger.set_status("admin", "farm", ApprovalStatus.APPROVED)
        ledger.set_status("admin", "mill", ApprovalStatus.APPROVED)

        lot_id = ledger.create_lot("farm", "Wheat 2025", 100)
        transfer_id = ledger.initiate_transfer("farm", "mill", lot_id, 40)
        ledger.accept_transfer("mill", transfer_id)
    """

    def __init__(
        self,
        name: str,
        administrator: str,
        initial_time: Optional[datetime] = None,
        verbose: bool = True,
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier
            administrator: Identity allowed to set approval statuses and
                force-reject transfers. Fixed for the life of the ledger.
            initial_time: Starting logical time (default: 1970-01-01)
            verbose: Print a line for every applied or rejected call (default: True)

        Raises:
            ValueError: If administrator is not a string or is the zero identity
        """
        if not isinstance(administrator, str) or is_zero_identity(administrator):
            raise ValueError("Administrator cannot be the zero identity")
        self.name = name
        self._administrator = administrator
        self._current_time: datetime = initial_time or DEFAULT_START_TIME
        self.verbose = verbose

        self._registry = IdentityRegistry()
        self._lots = LotLedger(self._registry)
        self._transfers = TransferProtocol(self._lots)
        self._notifications = NotificationBus()

        self._lock = threading.Lock()
        self._guard_owner: Optional[int] = None

    # ========================================================================
    # SupplyChainView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @property
    def current_time(self) -> datetime:
        """Current logical time of the ledger."""
        return self._current_time

    @property
    def administrator(self) -> str:
        return self._administrator

    def get_info(self, identity: str) -> Participant:
        """Participant record of identity, or UNREGISTERED_PARTICIPANT."""
        with self._shared():
            return self._registry.get_info(identity)

    def get_lot(self, lot_id: int) -> Lot:
        """
        Raises:
            NotFound: If lot_id does not exist
        """
        with self._shared():
            return self._lots.get_lot(lot_id)

    def get_balance(self, lot_id: int, identity: str) -> int:
        """
        Quantity of lot_id held by identity (0 if none).

        Raises:
            NotFound: If lot_id does not exist
        """
        with self._shared():
            return self._lots.get_balance(lot_id, identity)

    def get_holders(self, lot_id: int) -> Dict[str, int]:
        with self._shared():
            return self._lots.get_holders(lot_id)

    def get_transfer(self, transfer_id: int) -> Transfer:
        """
        Raises:
            NotFound: If transfer_id does not exist
        """
        with self._shared():
            return self._transfers.get_transfer(transfer_id)

    def lot_ids(self) -> List[int]:
        with self._shared():
            return self._lots.lot_ids()

    def transfer_ids(self) -> List[int]:
        with self._shared():
            return self._transfers.transfer_ids()

    # ========================================================================
    # QUERIES
    # ========================================================================

    def list_lots_for(self, identity: str) -> List[int]:
        with self._shared():
            return queries.list_lots_for(self, identity)

    def list_transfers_for(self, identity: str) -> List[int]:
        with self._shared():
            return queries.list_transfers_for(self, identity)

    def list_pending_transfers_for(self, identity: str) -> List[int]:
        with self._shared():
            return queries.list_pending_transfers_for(self, identity)

    def holdings_of(self, identity: str) -> Dict[int, int]:
        with self._shared():
            return queries.holdings_of(self, identity)

    @property
    def next_lot_id(self) -> int:
        return self._lots.next_lot_id

    @property
    def next_transfer_id(self) -> int:
        return self._transfers.next_transfer_id

    @property
    def notification_log(self) -> Tuple[Notification, ...]:
        with self._shared():
            return self._notifications.log

    def list_participants(self) -> List[Participant]:
        with self._shared():
            return [self._registry.get_info(i) for i in self._registry.list_identities()]

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Verify that every lot's holder balances add up to its total supply.

        Returns:
            Dict with keys:
            - 'valid': bool - True if every lot conserves its supply and no
              balance is negative
            - 'supplies': Dict[int, int] - current sum of balances per lot
            - 'discrepancies': List[Dict] - one entry per violating lot with
              lot_id, expected, actual and negative_holders

        Example:
            result = ledger.verify_conservation()
            assert result['valid'], f"Conservation violated: {result['discrepancies']}"
        """
        supplies = {}
        discrepancies = []

        with self._shared():
            for lot_id in self._lots.lot_ids():
                lot = self._lots.get_lot(lot_id)
                actual = self._lots.total_held(lot_id)
                supplies[lot_id] = actual
                negative = sorted(h for h, q in self._lots.get_holders(lot_id).items() if q < 0)
                if actual != lot.total_supply or negative:
                    discrepancies.append({
                        'lot_id': lot_id,
                        'expected': lot.total_supply,
                        'actual': actual,
                        'negative_holders': negative,
                    })

        return {
            'valid': len(discrepancies) == 0,
            'supplies': supplies,
            'discrepancies': discrepancies,
        }

    # ========================================================================
    # TIME MANAGEMENT
    # ========================================================================

    def advance_time(self, new_time: datetime) -> None:
        """
        Advance the ledger's logical clock. Time only moves forward.

        Raises:
            ValueError: If new_time is before the current time
            ReentrantCall: If called from inside another ledger call
        """
        with self._exclusive("advance_time"):
            if new_time < self._current_time:
                raise ValueError(
                    f"Cannot move time backwards: {new_time} < {self._current_time}"
                )
            self._current_time = new_time

    # ========================================================================
    # NOTIFICATIONS
    # ========================================================================

    def subscribe(
        self,
        handler: Subscriber,
        kinds: Optional[Iterable[NotificationType]] = None,
    ) -> Callable[[], None]:
        """
        Call handler for every committed notification (or only the given kinds).

        Handlers run after the call that produced the notification has
        released the ledger, so they may call back into it. Anything a handler
        raises propagates to the caller; the committed change stands.

        Returns:
            A function that cancels the subscription
        """
        return self._notifications.subscribe(handler, kinds)

    # ========================================================================
    # CALL GUARD
    # ========================================================================

    @contextmanager
    def _exclusive(self, operation: str) -> Iterator[None]:
        """
        Hold the ledger for the duration of one mutating call.

        Released on every exit path.

        Raises:
            ReentrantCall: If this thread is already inside a mutating call
        """
        if self._guard_owner == threading.get_ident():
            raise ReentrantCall(f"{operation} called while another ledger call is in progress")
        with self._shared():
            yield

    @contextmanager
    def _shared(self) -> Iterator[None]:
        """
        Hold the ledger for a read.

        A thread that already holds the ledger passes straight through, so
        validators and queries can read through the view mid-call. Other
        threads wait until the current call has finished.
        """
        me = threading.get_ident()
        if self._guard_owner == me:
            yield
            return
        with self._lock:
            self._guard_owner = me
            try:
                yield
            finally:
                self._guard_owner = None

    @contextmanager
    def _mutation(self, operation: str) -> Iterator[List[Notification]]:
        """
        Run one mutating call: guard, report, then deliver its notifications.

        The body appends what it publishes to the yielded list. Delivery
        happens only if the body committed, after the guard is released.
        """
        published: List[Notification] = []
        try:
            with self._exclusive(operation):
                yield published
        except LedgerError as e:
            if self.verbose:
                print(f"✗ REJECTED {operation}: {type(e).__name__}: {e}")
            raise
        self._notifications.deliver(published)

    def _publish(self, kind: NotificationType, **params: Any) -> Notification:
        return self._notifications.publish(kind, self._current_time, **params)

    def _report(self, operation: str, detail: str) -> None:
        if self.verbose:
            print(f"✓ {operation}: {detail}")

    # ========================================================================
    # IDENTITY REGISTRY (Mutating)
    # ========================================================================

    def request_role(self, caller: str, role: Union[Role, str]) -> Participant:
        """
        Request a role for caller. Always leaves caller PENDING approval.

        Raises:
            InvalidInput: If role is empty or unknown
        """
        with self._mutation("request_role") as published:
            record = self._registry.request_role(caller, role, now=self._current_time)
            published.append(self._publish(
                NotificationType.ROLE_REQUESTED,
                identity=caller, role=record.role.value,
            ))
            published.append(self._publish(
                NotificationType.STATUS_CHANGED,
                identity=caller, status=record.status.value,
            ))
            self._report("request_role", f"{caller} -> {record.role.value} [{record.status.value}]")
        return record

    def set_status(
        self,
        caller: str,
        identity: str,
        status: Union[ApprovalStatus, str],
    ) -> Participant:
        """
        Set identity's approval status. Administrator only.

        Raises:
            NotAdministrator: If caller is not the administrator
            NotFound: If identity has no record
            InvalidInput: If status is unknown
        """
        with self._mutation("set_status") as published:
            if caller != self._administrator:
                raise NotAdministrator(f"{caller} is not the administrator")
            record = self._registry.set_status(identity, status, now=self._current_time)
            published.append(self._publish(
                NotificationType.STATUS_CHANGED,
                identity=identity, status=record.status.value,
            ))
            self._report("set_status", f"{identity} [{record.status.value}]")
        return record

    # ========================================================================
    # LOT LEDGER (Mutating)
    # ========================================================================

    def create_lot(
        self,
        caller: str,
        name: str,
        total_supply: int,
        features: str = "",
        parent_id: Optional[int] = None,
    ) -> int:
        """
        Create a lot whose whole supply is credited to caller.

        Returns:
            The new lot id

        Raises:
            NotApproved: If caller does not pass the approval gate
            InvalidInput: If name is empty or total_supply is malformed
        """
        with self._mutation("create_lot") as published:
            lot = self._lots.create_lot(
                caller, name, total_supply, features, parent_id, now=self._current_time
            )
            published.append(self._publish(
                NotificationType.LOT_CREATED,
                lot_id=lot.lot_id, creator=caller, name=lot.name,
                total_supply=lot.total_supply, parent_id=lot.parent_id,
            ))
            self._report("create_lot", repr(lot))
        return lot.lot_id

    # ========================================================================
    # TRANSFER PROTOCOL (Mutating)
    # ========================================================================

    def initiate_transfer(self, caller: str, recipient: str, lot_id: int, amount: int) -> int:
        """
        Propose moving amount units of lot_id from caller to recipient.

        The units move immediately; see transfers.py.

        Returns:
            The new transfer id

        Raises:
            InvalidRecipient, InvalidAmount, NotFound, NotApproved,
            RecipientUnregistered, TerminalRoleCannotTransfer,
            IllegalRoleTransition, InsufficientBalance
        """
        with self._mutation("initiate_transfer") as published:
            transfer = self._transfers.initiate(
                self, caller, recipient, lot_id, amount, now=self._current_time
            )
            published.append(self._publish(
                NotificationType.TRANSFER_REQUESTED,
                transfer_id=transfer.transfer_id, sender=caller, recipient=recipient,
                lot_id=lot_id, amount=amount,
            ))
            self._report("initiate_transfer", repr(transfer))
        return transfer.transfer_id

    def accept_transfer(self, caller: str, transfer_id: int) -> Transfer:
        """
        Close a pending transfer as accepted. Only the recipient may accept.

        Raises:
            NotFound, InvalidState, NotRecipient, IllegalRoleTransition
        """
        with self._mutation("accept_transfer") as published:
            transfer = self._transfers.accept(self, transfer_id, caller, now=self._current_time)
            published.append(self._publish(
                NotificationType.TRANSFER_ACCEPTED,
                transfer_id=transfer_id, lot_id=transfer.lot_id, recipient=transfer.recipient,
            ))
            self._report("accept_transfer", repr(transfer))
        return transfer

    def reject_transfer(self, caller: str, transfer_id: int) -> Transfer:
        """
        Refund a pending transfer to its sender. Recipient or administrator only.

        Raises:
            NotFound, InvalidState, NotAuthorized, InsufficientBalance
        """
        with self._mutation("reject_transfer") as published:
            transfer = self._transfers.reject(self, transfer_id, caller, now=self._current_time)
            published.append(self._publish(
                NotificationType.TRANSFER_REJECTED,
                transfer_id=transfer_id, lot_id=transfer.lot_id, sender=transfer.sender,
                resolved_by=caller,
            ))
            self._report("reject_transfer", repr(transfer))
        return transfer

    # ========================================================================
    # LEDGER OPERATIONS
    # ========================================================================

    def clone(self) -> SupplyChainLedger:
        """
        Create a fully independent copy of this ledger.

        Participants, lots, balances, transfers, counters, the notification
        log and the clock are copied. Subscribers are not.
        """
        cloned = SupplyChainLedger.__new__(SupplyChainLedger)
        cloned.name = self.name
        cloned._administrator = self._administrator
        cloned.verbose = self.verbose

        with self._shared():
            cloned._current_time = self._current_time
            cloned._registry = self._registry.copy()
            cloned._lots = self._lots.copy(cloned._registry)
            cloned._transfers = self._transfers.copy(cloned._lots)
            cloned._notifications = self._notifications.copy()

        cloned._lock = threading.Lock()
        cloned._guard_owner = None
        return cloned
