"""
registry.py - Identity Registry

Maps each participant identity to a single role-approval record.

Lifecycle of a record:
    request_role  ->  PENDING (new record, or existing record with role overwritten)
    set_status    ->  any ApprovalStatus, set unconditionally by the administrator

The approval gate (record exists AND status == APPROVED) is evaluated on
every call that needs it; a participant moved away from APPROVED loses its
rights on the next call.
"""

from __future__ import annotations
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Union

from .core import (
    Participant, Role, ApprovalStatus,
    UNREGISTERED_PARTICIPANT, FIRST_ID,
    InvalidInput, NotApproved, NotFound,
    is_zero_identity, parse_role, parse_status,
)


class IdentityRegistry:
    """Owner of all Participant records, keyed by identity."""

    def __init__(self):
        self._participants: Dict[str, Participant] = {}
        self._next_id: int = FIRST_ID

    def request_role(
        self,
        identity: str,
        role: Union[Role, str, None],
        now: Optional[datetime] = None,
    ) -> Participant:
        """
        Create or overwrite the identity's role request.

        A new identity gets the next participant id. A known identity keeps
        its id, takes the new role and goes back to PENDING, so a role change
        always needs fresh approval.

        Raises:
            InvalidInput: If identity is the zero identity or role is empty/unknown.
        """
        if is_zero_identity(identity):
            raise InvalidInput("Identity cannot be empty")
        parsed = parse_role(role)

        existing = self._participants.get(identity)
        if existing is None:
            record = Participant(
                participant_id=self._next_id,
                identity=identity,
                role=parsed,
                status=ApprovalStatus.PENDING,
                updated_at=now,
            )
            self._next_id += 1
        else:
            record = replace(existing, role=parsed, status=ApprovalStatus.PENDING, updated_at=now)
        self._participants[identity] = record
        return record

    def set_status(
        self,
        identity: str,
        status: Union[ApprovalStatus, str],
        now: Optional[datetime] = None,
    ) -> Participant:
        """
        Overwrite the approval status of an existing record.

        Administrator authorization is checked by the caller.

        Raises:
            NotFound: If identity has no record.
            InvalidInput: If status is not a known ApprovalStatus.
        """
        existing = self._participants.get(identity)
        if existing is None:
            raise NotFound(f"Participant {identity} not registered")
        record = replace(existing, status=parse_status(status), updated_at=now)
        self._participants[identity] = record
        return record

    def get_info(self, identity: str) -> Participant:
        """Return the record for identity, or UNREGISTERED_PARTICIPANT. Never raises."""
        return self._participants.get(identity, UNREGISTERED_PARTICIPANT)

    def is_registered(self, identity: str) -> bool:
        return identity in self._participants

    def is_approved(self, identity: str) -> bool:
        return self.get_info(identity).is_approved

    def require_approved(self, identity: str) -> Participant:
        """
        Apply the approval gate.

        Raises:
            NotApproved: If identity has no record or is not APPROVED.
        """
        record = self.get_info(identity)
        if not record.is_registered:
            raise NotApproved(f"{identity} has not requested a role")
        if record.status != ApprovalStatus.APPROVED:
            raise NotApproved(f"{identity} is {record.status.value}, not approved")
        return record

    def list_identities(self) -> List[str]:
        """All registered identities, ordered by participant id."""
        return [p.identity for p in sorted(self._participants.values(), key=lambda p: p.participant_id)]

    def __len__(self) -> int:
        return len(self._participants)

    def copy(self) -> IdentityRegistry:
        """Independent copy. Records are immutable, so a shallow dict copy suffices."""
        cloned = IdentityRegistry()
        cloned._participants = dict(self._participants)
        cloned._next_id = self._next_id
        return cloned
