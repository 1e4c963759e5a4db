"""Session orchestrator.

Objective:
    Coordinate the two panel pipelines for one signed-in user:
    1) Folder suggestion: build the folder forest once on sign-in, then
       score it whenever the attachment selection changes.
    2) Contact capture: extract a contact from the open email, reconcile it
       with the directory, and apply the user's decision.

Responsibilities:
    - Compose the core components (auth, Graph client, tree builder,
      scorer, directory, reconciliation engine).
    - Hold the per-session state: the forest and the open reconciliation
      sessions keyed by contact identity.
    - Provide an imperative API that can be called from the CLI, the
      FastAPI webapp, or other scripts.

High-level call tree:
    - :class:`AssistantOrchestrator`
        - :meth:`sign_in`
            - :meth:`GraphClient.resolve_drive_id` (unless DRIVE_ID is set)
            - :meth:`TreeBuilder.build`
        - :meth:`suggest_folder`
            - :func:`default_selection` / :func:`build_targets`
            - :meth:`MatchScorer.best_match`
        - :meth:`extract_contact`
            - :func:`body_to_text`
            - :func:`extract_contact`
        - :meth:`check_contact` -> :meth:`ReconciliationEngine.reconcile`
        - :meth:`confirm_contact` -> :meth:`ReconciliationEngine.confirm`
        - :meth:`dismiss_contact` -> :meth:`ReconciliationEngine.dismiss`

Operational notes:
    - The two pipelines share no state.
    - Failures from Graph propagate to the caller; nothing is retried.
"""

import logging
from typing import Optional

from .auth import GraphAuthenticator
from .config import Settings, get_settings
from .graph_client import ContactDirectory, DriveNamespace, GraphClient
from .match_scorer import MatchScorer, build_targets, default_selection
from .models import (
    Attachment,
    ContactRecord,
    FolderNode,
    MailItem,
    MatchOutcome,
    ReconciliationState,
)
from .reconciliation import ReconciliationEngine, ReconciliationSession
from .sanitizer import body_to_text
from .signature import extract_contact
from .tree_builder import TreeBuilder

logger = logging.getLogger(__name__)


class NotSignedIn(RuntimeError):
    """Raised when a folder suggestion is requested before sign-in."""


class AssistantOrchestrator:
    """
    Orchestrates the side panel workflows for one user session.

    This class is intentionally "glue" code: the heuristics live in the
    scorer, the signature parser and the reconciliation engine.

    Attributes:
        settings: Application settings.
        auth: Graph API authenticator.
        graph_client: Graph transport.
        directory: Contact directory collaborator.
        scorer: Folder match scorer.
        reconciliation: Contact reconciliation engine.
        forest: Folder forest built on sign-in (None when signed out).
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        """
        Initialize orchestrator with all components.

        Args:
            settings: Application settings (loads from env if None).
        """
        self.settings = settings or get_settings()

        self.auth = GraphAuthenticator(self.settings)
        self.graph_client = GraphClient(self.settings, self.auth)
        self.directory = ContactDirectory(self.graph_client)
        self.scorer = MatchScorer(self.settings.fallback_chain)
        self.reconciliation = ReconciliationEngine(
            self.directory, lookup=self.settings.contact_lookup
        )

        self.forest: Optional[list[FolderNode]] = None
        self._sessions: dict[str, ReconciliationSession] = {}

    @property
    def is_signed_in(self) -> bool:
        """True once a forest has been built."""
        return self.forest is not None

    def sign_in(self) -> list[FolderNode]:
        """
        Build the folder forest for this session.

        Returns:
            list[FolderNode]: The forest.

        Raises:
            TransportFailure: If the drive or any folder listing fails; the
                session stays signed out.
        """
        drive_id = self.settings.drive_id or self.graph_client.resolve_drive_id(
            self.settings.sharepoint_hostname, self.settings.sharepoint_site_path
        )
        builder = TreeBuilder(
            DriveNamespace(self.graph_client, drive_id), self.settings.expansion_policy
        )
        self.forest = builder.build(self.settings.namespace_root_id)
        return self.forest

    def sign_out(self) -> None:
        """Discard the forest and all open contact sessions."""
        self.forest = None
        self._sessions.clear()
        logger.debug("Session state cleared")

    def suggest_folder(
        self,
        attachments: list[Attachment],
        subject: str = "",
        selected_ids: Optional[list[str]] = None,
    ) -> MatchOutcome:
        """
        Suggest a folder for the selected attachments.

        Args:
            attachments: All attachments of the open email.
            subject: Mail subject.
            selected_ids: Ids of the selected attachments; defaults to all
                attachments except inline images.

        Returns:
            MatchOutcome: Suggested folder.

        Raises:
            NotSignedIn: If :meth:`sign_in` has not completed.
        """
        if self.forest is None:
            raise NotSignedIn("Sign in before requesting folder suggestions")

        if selected_ids is None:
            selected_ids = default_selection(attachments)
        wanted = set(selected_ids)
        selected = [a for a in attachments if a.id in wanted]

        targets = build_targets(selected, subject)
        outcome = self.scorer.best_match(self.forest, targets)
        path = outcome.node.path if outcome.node else "-"
        logger.info(f"Folder suggestion for {len(selected)} attachment(s): {outcome.kind} {path}")
        return outcome

    def extract_contact(self, mail: MailItem) -> ContactRecord:
        """
        Extract a contact from the open email.

        Args:
            mail: Mail item from the host.

        Returns:
            ContactRecord: Extracted contact.
        """
        text = body_to_text(mail.body, mail.body_type)
        return extract_contact(text, mail.sender_name, mail.sender_email)

    def check_contact(self, record: ContactRecord) -> ReconciliationSession:
        """
        Start a reconciliation cycle for a contact.

        A previous session for the same identity is replaced. Sessions that
        need no decision (``exists-unchanged``) are not kept.

        Args:
            record: Contact to reconcile.

        Returns:
            ReconciliationSession: Session after the lookup.
        """
        session = self.reconciliation.reconcile(record)
        self._sessions[session.key] = session
        self._discard_if_closed(session)
        return session

    def get_session(self, identity: str) -> Optional[ReconciliationSession]:
        """Return the open session for a contact identity, if any."""
        return self._sessions.get((identity or "").strip().lower())

    def confirm_contact(
        self, identity: str, record: Optional[ContactRecord] = None
    ) -> ReconciliationSession:
        """
        Create or update the contact for an open session.

        Args:
            identity: Contact identity (see :attr:`ContactRecord.identity`).
            record: User-edited values to save instead of the extracted ones.

        Returns:
            ReconciliationSession: Session after the action.

        Raises:
            KeyError: If no session is open for ``identity``.
            OperationPending: If a save for this contact is in flight; the
                in-flight session is left untouched.
        """
        session = self._require_session(identity)
        try:
            return self.reconciliation.confirm(session, record=record)
        finally:
            self._discard_if_closed(session)

    def dismiss_contact(self, identity: str) -> ReconciliationSession:
        """Dismiss the offered create/update for an open session."""
        session = self._require_session(identity)
        try:
            return self.reconciliation.dismiss(session)
        finally:
            self._discard_if_closed(session)

    def _require_session(self, identity: str) -> ReconciliationSession:
        session = self.get_session(identity)
        if session is None:
            raise KeyError(f"No contact check in progress for {identity!r}")
        return session

    def _discard_if_closed(self, session: ReconciliationSession) -> None:
        if session.state not in (ReconciliationState.IDLE, ReconciliationState.UNCHANGED):
            return
        if self._sessions.get(session.key) is session:
            del self._sessions[session.key]
