#!/usr/bin/env python3
"""
demo.py - Walkthrough: A Lot Moves Down the Supply Chain

Each step builds on the previous one. Press Enter to advance.

WHAT YOU'LL SEE:
  1-3:  Setup        - Roles, approvals, creating a lot
  4-6:  Transfers    - Initiate, accept, reject (units move at initiation)
  7-8:  Guardrails   - Refused calls change nothing, consumers are terminal
  9-10: Oversight    - Administrator interventions, conservation check

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
import sys

from lotledger import (
    SupplyChainLedger, Role, ApprovalStatus, NotificationType,
    LedgerError,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the walkthrough. Modify these to experiment."""
    start_time: datetime = datetime(2025, 1, 1, 9, 0, 0)

    admin: str = "regulator"
    producer: str = "green_farm"
    factory: str = "flour_mill"
    retailer: str = "corner_shop"
    consumer: str = "alice"

    wheat_supply: int = 1000
    first_shipment: int = 400
    disputed_shipment: int = 150


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    """Print a step header with learning objective."""
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def show_holders(ledger: SupplyChainLedger, lot_id: int):
    for holder, quantity in sorted(ledger.get_holders(lot_id).items()):
        print(f"    {holder:<14} {quantity:>6}")


# ============================================================================
# PHASE 1: SETUP (Steps 1-3)
# ============================================================================

def step_01_roles():
    step_header(1, "Requesting Roles",
        "Every participant asks for a role and waits for the administrator.")

    print(">>> ledger = SupplyChainLedger('demo', administrator='regulator', verbose=True)")
    ledger = SupplyChainLedger("demo", CONFIG.admin, CONFIG.start_time, verbose=True)

    for identity, role in [
        (CONFIG.producer, Role.PRODUCER),
        (CONFIG.factory, Role.FACTORY),
        (CONFIG.retailer, Role.RETAILER),
        (CONFIG.consumer, Role.CONSUMER),
    ]:
        ledger.request_role(identity, role)

    section_header("Registry")
    for participant in ledger.list_participants():
        print(f"    #{participant.participant_id} {participant.identity:<14} "
              f"{participant.role.value:<9} {participant.status.value}")
    return ledger


def step_02_approvals(ledger: SupplyChainLedger):
    step_header(2, "Approvals",
        "Only the administrator can approve, and only approved identities act.")

    section_header("A non-administrator tries to approve itself")
    try:
        ledger.set_status(CONFIG.producer, CONFIG.producer, ApprovalStatus.APPROVED)
    except LedgerError as e:
        print(f"    refused: {type(e).__name__}")

    section_header("The administrator approves everyone")
    for identity in (CONFIG.producer, CONFIG.factory, CONFIG.retailer, CONFIG.consumer):
        ledger.set_status(CONFIG.admin, identity, ApprovalStatus.APPROVED)
    return ledger


def step_03_create_lot(ledger: SupplyChainLedger):
    step_header(3, "Creating a Lot",
        "The creator holds the whole supply of a new lot.")

    lot_id = ledger.create_lot(
        CONFIG.producer, "Winter wheat", CONFIG.wheat_supply, features="organic; harvest 2024"
    )
    section_header(f"Holders of lot {lot_id}")
    show_holders(ledger, lot_id)
    return ledger, lot_id


# ============================================================================
# PHASE 2: TRANSFERS (Steps 4-6)
# ============================================================================

def step_04_initiate(ledger: SupplyChainLedger, lot_id: int):
    step_header(4, "Initiating a Transfer",
        "Units leave the sender the moment the transfer is initiated.")

    transfer_id = ledger.initiate_transfer(
        CONFIG.producer, CONFIG.factory, lot_id, CONFIG.first_shipment
    )
    section_header("Holders while the transfer is pending")
    show_holders(ledger, lot_id)
    print(f"\n    pending for {CONFIG.factory}: "
          f"{ledger.list_pending_transfers_for(CONFIG.factory)}")
    return ledger, transfer_id


def step_05_accept(ledger: SupplyChainLedger, lot_id: int, transfer_id: int):
    step_header(5, "Accepting",
        "Acceptance only closes the record; balances do not change.")

    ledger.advance_time(ledger.current_time + timedelta(hours=2))
    ledger.accept_transfer(CONFIG.factory, transfer_id)
    show_holders(ledger, lot_id)
    return ledger


def step_06_reject(ledger: SupplyChainLedger, lot_id: int):
    step_header(6, "Rejecting",
        "A rejection returns the escrowed units to the sender.")

    transfer_id = ledger.initiate_transfer(CONFIG.factory, CONFIG.retailer, lot_id, 50)
    section_header("After initiation")
    show_holders(ledger, lot_id)

    ledger.reject_transfer(CONFIG.retailer, transfer_id)
    section_header("After rejection")
    show_holders(ledger, lot_id)
    return ledger


# ============================================================================
# PHASE 3: GUARDRAILS (Steps 7-8)
# ============================================================================

def step_07_refusals(ledger: SupplyChainLedger, lot_id: int):
    step_header(7, "Refused Calls",
        "A refused call raises a named error and leaves the ledger untouched.")

    before = ledger.get_holders(lot_id)
    attempts = [
        ("overspend", lambda: ledger.initiate_transfer(CONFIG.producer, CONFIG.factory, lot_id, 10**6)),
        ("skip a link", lambda: ledger.initiate_transfer(CONFIG.producer, CONFIG.retailer, lot_id, 1)),
        ("send to self", lambda: ledger.initiate_transfer(CONFIG.producer, CONFIG.producer, lot_id, 1)),
        ("unknown lot", lambda: ledger.initiate_transfer(CONFIG.producer, CONFIG.factory, 99, 1)),
    ]
    for label, attempt in attempts:
        try:
            attempt()
        except LedgerError:
            pass
        print(f"    after '{label}': unchanged = {ledger.get_holders(lot_id) == before}")
    return ledger


def step_08_terminal_role(ledger: SupplyChainLedger, lot_id: int):
    step_header(8, "The End of the Chain",
        "Consumers can receive units but never send them on.")

    transfer_id = ledger.initiate_transfer(CONFIG.factory, CONFIG.retailer, lot_id, 100)
    ledger.accept_transfer(CONFIG.retailer, transfer_id)
    transfer_id = ledger.initiate_transfer(CONFIG.retailer, CONFIG.consumer, lot_id, 3)
    ledger.accept_transfer(CONFIG.consumer, transfer_id)

    try:
        ledger.initiate_transfer(CONFIG.consumer, CONFIG.retailer, lot_id, 1)
    except LedgerError as e:
        print(f"    consumer resale refused: {type(e).__name__}")
    return ledger


# ============================================================================
# PHASE 4: OVERSIGHT (Steps 9-10)
# ============================================================================

def step_09_administrator(ledger: SupplyChainLedger, lot_id: int):
    step_header(9, "Administrator Interventions",
        "The administrator can cancel a disputed transfer or suspend a participant.")

    received = []
    unsubscribe = ledger.subscribe(received.append, kinds=[NotificationType.TRANSFER_REJECTED])

    transfer_id = ledger.initiate_transfer(
        CONFIG.producer, CONFIG.factory, lot_id, CONFIG.disputed_shipment
    )
    ledger.reject_transfer(CONFIG.admin, transfer_id)
    unsubscribe()
    print(f"\n    subscriber saw: {received}")

    section_header("Suspending the mill")
    ledger.set_status(CONFIG.admin, CONFIG.factory, ApprovalStatus.CANCELED)
    try:
        ledger.initiate_transfer(CONFIG.factory, CONFIG.retailer, lot_id, 1)
    except LedgerError as e:
        print(f"    suspended mill refused: {type(e).__name__}")
    print(f"    mill still holds {ledger.get_balance(lot_id, CONFIG.factory)} units")
    return ledger


def step_10_conservation(ledger: SupplyChainLedger, lot_id: int):
    step_header(10, "Conservation",
        "No operation ever created or destroyed a unit.")

    show_holders(ledger, lot_id)
    result = ledger.verify_conservation()
    print(f"\n    supplies: {result['supplies']}")
    print(f"    valid:    {result['valid']}")

    section_header("Audit trail")
    for notification in ledger.notification_log:
        print(f"    {notification!r}")

    section_header("Who touched what")
    for identity in (CONFIG.producer, CONFIG.factory, CONFIG.retailer, CONFIG.consumer):
        print(f"    {identity:<14} lots={ledger.list_lots_for(identity)} "
              f"transfers={ledger.list_transfers_for(identity)}")


def main():
    """Run the complete walkthrough."""
    print("=" * 70)
    print("       LOT LEDGER - SUPPLY CHAIN WALKTHROUGH")
    print("=" * 70)

    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")

    wait_for_enter()

    ledger = step_01_roles()
    wait_for_enter()

    ledger = step_02_approvals(ledger)
    wait_for_enter()

    ledger, lot_id = step_03_create_lot(ledger)
    wait_for_enter()

    ledger, transfer_id = step_04_initiate(ledger, lot_id)
    wait_for_enter()

    ledger = step_05_accept(ledger, lot_id, transfer_id)
    wait_for_enter()

    ledger = step_06_reject(ledger, lot_id)
    wait_for_enter()

    ledger = step_07_refusals(ledger, lot_id)
    wait_for_enter()

    ledger = step_08_terminal_role(ledger, lot_id)
    wait_for_enter()

    ledger = step_09_administrator(ledger, lot_id)
    wait_for_enter()

    step_10_conservation(ledger, lot_id)

    print("\n" + "=" * 70)
    print("       WALKTHROUGH COMPLETE")
    print("=" * 70)
    print("""
    Next steps:
      - See lotledger/transfers.py for the transfer state machine
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
