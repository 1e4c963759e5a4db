"""Contact reconciliation against the user's directory.

Objective:
    Decide what to do with a contact extracted from a signature: create it,
    offer to update the existing entry, or do nothing.

State machine (:class:`ReconciliationState`):
    - ``checking``  -> ``not-found``         no existing entry
    - ``checking``  -> ``exists-unchanged``  email, phone and organization equal
    - ``checking``  -> ``exists-changed``    any of those differ
    - ``not-found`` -> ``idle``              after create (success or failure)
    - ``exists-changed`` -> ``idle``         after update, or on dismiss
    - ``exists-unchanged`` is terminal for the cycle.

    A failed lookup leaves the session in ``checking``; the caller starts a
    new cycle to retry.

Mutual exclusion:
    Create and update target the same remote contact, so at most one of them
    may be in flight per contact identity. :class:`PendingOperationGuard`
    sets its slot before the remote call and clears it in ``finally``, so a
    failed action can always be retried by the user.

    The slot key is :attr:`ReconciliationSession.key`, taken from the record
    when the cycle starts. State checks, record edits and the move to
    ``idle`` all happen while the slot is held.

High-level call tree:
    - :class:`ReconciliationEngine`
        - :meth:`reconcile`
            - :meth:`check`
                - :meth:`_lookup`
                - :func:`compare`
        - :meth:`confirm`
            - :meth:`PendingOperationGuard.hold`
            - directory ``create`` / ``update``
        - :meth:`dismiss`
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, Literal, Optional, Protocol

from pydantic import BaseModel, model_validator

from .errors import InvalidTransition, OperationPending
from .models import ContactRecord, DirectoryEntry, ReconciliationState

logger = logging.getLogger(__name__)


class DirectoryService(Protocol):
    """Operations the engine needs from the contact directory."""

    def find_by_email(self, email: str) -> Optional[DirectoryEntry]:
        ...

    def find_by_display_name(self, name: str) -> Optional[DirectoryEntry]:
        ...

    def create(self, record: ContactRecord) -> str:
        ...

    def update(self, entry_id: str, record: ContactRecord) -> None:
        ...


def compare(record: ContactRecord, entry: Optional[DirectoryEntry]) -> ReconciliationState:
    """
    Compare an extracted record with an existing entry.

    Comparison is strict string equality on email, phone and organization.

    Args:
        record: Extracted (possibly user-edited) contact.
        entry: Existing directory entry, or None when not found.

    Returns:
        ReconciliationState: ``not-found``, ``exists-unchanged`` or
        ``exists-changed``.
    """
    if entry is None:
        return ReconciliationState.NOT_FOUND
    same = (
        entry.email == record.email
        and entry.phone == record.phone
        and entry.organization == record.organization
    )
    return ReconciliationState.UNCHANGED if same else ReconciliationState.CHANGED


class PendingOperationGuard:
    """Single-slot guard per contact identity.

    The check-and-set runs under a lock so the guard also holds when the web
    layer serves requests from a thread pool.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: set[str] = set()

    def is_pending(self, key: str) -> bool:
        """Return True while an operation holds ``key``."""
        with self._lock:
            return key in self._pending

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """
        Hold the slot for ``key`` for the duration of the block.

        Raises:
            OperationPending: If ``key`` is already held.
        """
        with self._lock:
            if key in self._pending:
                raise OperationPending(key)
            self._pending.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._pending.discard(key)


class ReconciliationSession(BaseModel):
    """
    One check/confirm cycle for a contact.

    Attributes:
        record: Contact being reconciled (editable until confirm).
        key: Guard key, fixed when the cycle starts (defaults to the
            record identity). Later edits to the record do not change it.
        state: Current state.
        existing: Entry found by the lookup.
        created_id: Id returned by a successful create.
        error: Message of the last failure in this cycle.
    """

    record: ContactRecord
    key: str = ""
    state: ReconciliationState = ReconciliationState.CHECKING
    existing: Optional[DirectoryEntry] = None
    created_id: Optional[str] = None
    error: Optional[str] = None

    @model_validator(mode="after")
    def _fix_key(self) -> "ReconciliationSession":
        if not self.key:
            self.key = self.record.identity
        return self


class ReconciliationEngine:
    """
    Drives the reconciliation state machine against a directory.

    Attributes:
        directory: Directory collaborator.
        guard: Pending-operation guard; pass a shared instance to coordinate
            several engines.
        lookup: ``email`` (default) or ``display_name``.
    """

    def __init__(
        self,
        directory: DirectoryService,
        guard: Optional[PendingOperationGuard] = None,
        lookup: Literal["email", "display_name"] = "email",
    ) -> None:
        self.directory = directory
        self.guard = guard or PendingOperationGuard()
        self.lookup = lookup

    def _lookup(self, record: ContactRecord) -> Optional[DirectoryEntry]:
        if self.lookup == "display_name":
            if not record.name:
                return None
            return self.directory.find_by_display_name(record.name)
        if not record.email:
            return None
        return self.directory.find_by_email(record.email)

    def check(self, session: ReconciliationSession) -> ReconciliationState:
        """
        Look up the existing entry and compute the session state.

        Args:
            session: Session in ``checking`` state.

        Returns:
            ReconciliationState: New state.

        Raises:
            InvalidTransition: If the session is not in ``checking``.
            TransportFailure: If the lookup fails (state stays ``checking``).
        """
        if session.state != ReconciliationState.CHECKING:
            raise InvalidTransition(session.state.value, "check")

        try:
            existing = self._lookup(session.record)
        except Exception as e:
            session.error = str(e)
            logger.error(f"Contact lookup failed for {session.key!r}: {e}")
            raise

        session.existing = existing
        session.error = None
        session.state = compare(session.record, existing)
        logger.info(f"Contact {session.key!r} reconciled as {session.state.value}")
        return session.state

    def reconcile(self, record: ContactRecord) -> ReconciliationSession:
        """Start a new cycle for ``record`` and run the lookup."""
        session = ReconciliationSession(record=record, key=record.identity)
        self.check(session)
        return session

    def confirm(
        self,
        session: ReconciliationSession,
        record: Optional[ContactRecord] = None,
    ) -> ReconciliationSession:
        """
        Apply the user-confirmed action: create when not found, update when
        changed.

        The guard is taken before the state is read, and the state moves to
        ``idle`` before the guard is released. A confirm racing another one
        for the same session therefore sees either a held slot or ``idle``.

        Args:
            session: Session in ``not-found`` or ``exists-changed``.
            record: User-edited values to save instead of ``session.record``;
                applied only once the guard is held.

        Returns:
            ReconciliationSession: The same session, now ``idle``.

        Raises:
            OperationPending: If an action for this contact is in flight.
            InvalidTransition: In any state other than ``not-found`` or
                ``exists-changed``.
            TransportFailure: If the directory call fails.
            StaleReference: If the entry to update no longer exists.
        """
        with self.guard.hold(session.key):
            if session.state == ReconciliationState.NOT_FOUND:
                action = "create"
            elif session.state == ReconciliationState.CHANGED and session.existing is not None:
                action = "update"
            else:
                raise InvalidTransition(session.state.value, "save")

            if record is not None:
                session.record = record
            try:
                if action == "create":
                    session.created_id = self.directory.create(session.record)
                else:
                    self.directory.update(session.existing.id, session.record)
            except Exception as e:
                session.error = str(e)
                session.state = ReconciliationState.IDLE
                logger.error(f"Contact {action} failed for {session.key!r}: {e}")
                raise

            session.error = None
            session.state = ReconciliationState.IDLE

        logger.info(f"Contact {session.key!r}: {action} completed")
        return session

    def dismiss(self, session: ReconciliationSession) -> ReconciliationSession:
        """
        Decline the offered action without touching the directory.

        Raises:
            OperationPending: If a create/update for this contact is in flight.
            InvalidTransition: Unless the session is ``not-found`` or
                ``exists-changed``.
        """
        with self.guard.hold(session.key):
            if session.state not in (ReconciliationState.NOT_FOUND, ReconciliationState.CHANGED):
                raise InvalidTransition(session.state.value, "dismiss")
            session.state = ReconciliationState.IDLE
        logger.debug(f"Contact {session.key!r} dismissed")
        return session
