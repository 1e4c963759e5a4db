"""FastAPI backend for the Outlook side panel.

Objective:
    Expose the orchestrator as a small JSON API the side panel calls. This
    module keeps business logic inside the orchestrator and only handles
    request parsing, response shaping and the mapping of errors to HTTP
    status codes.

High-level call tree:
    - :func:`create_app`:
        - defines routes:
            - ``GET /health`` -> :func:`health`
            - ``POST /api/session/sign-in`` -> :func:`sign_in`
            - ``POST /api/session/sign-out`` -> :func:`sign_out`
            - ``POST /api/folders/suggest`` -> :func:`suggest_folder`
            - ``POST /api/contacts/check`` -> :func:`check_contact`
            - ``POST /api/contacts/confirm`` -> :func:`confirm_contact`
            - ``POST /api/contacts/dismiss`` -> :func:`dismiss_contact`
        - registers exception handlers (see below)
    - :func:`get_orchestrator`:
        - returns the process-wide
          :class:`src.outlook_assistant.orchestrator.AssistantOrchestrator`.

Error mapping:
    - :class:`DeviceCodeAuthRequired` -> 401 with device-code instructions
    - :class:`NotSignedIn`, :class:`OperationPending`,
      :class:`InvalidTransition` -> 409
    - :class:`StaleReference` -> 410
    - :class:`TransportFailure` -> 502
    - unknown contact identity -> 404

Operational notes:
    - The orchestrator holds the folder forest and open contact sessions, so
      a single instance is shared by all requests.
    - For tests, :func:`get_orchestrator` is overridden via
      ``app.dependency_overrides``.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .auth import DeviceCodeAuthRequired
from .config import get_settings
from .errors import InvalidTransition, OperationPending, StaleReference, TransportFailure
from .models import Attachment, ContactRecord, MailItem
from .orchestrator import AssistantOrchestrator, NotSignedIn
from .reconciliation import ReconciliationSession

logger = logging.getLogger(__name__)


class SuggestRequest(BaseModel):
    """Body of ``POST /api/folders/suggest``."""

    attachments: list[Attachment] = Field(default_factory=list)
    subject: str = ""
    selected_ids: Optional[list[str]] = None


class CheckRequest(BaseModel):
    """Body of ``POST /api/contacts/check``.

    Either the open mail (the contact is extracted from its signature) or an
    already extracted, possibly user-edited, record.
    """

    mail: Optional[MailItem] = None
    record: Optional[ContactRecord] = None


class ContactActionRequest(BaseModel):
    """Body of ``POST /api/contacts/confirm`` and ``/dismiss``."""

    identity: str
    record: Optional[ContactRecord] = None


@lru_cache(maxsize=1)
def get_orchestrator() -> AssistantOrchestrator:
    """Return the shared :class:`AssistantOrchestrator`.

    Device-code instructions are surfaced through the API instead of the
    server console.

    Returns:
        AssistantOrchestrator: Orchestrator instance.
    """

    settings = get_settings()
    settings.device_code_prompt_mode = "web"
    return AssistantOrchestrator(settings=settings)


def _session_payload(session: ReconciliationSession) -> dict[str, Any]:
    return {
        "identity": session.key,
        "state": session.state.value,
        "record": session.record.model_dump(),
        "existing": session.existing.model_dump() if session.existing else None,
        "created_id": session.created_id,
        "error": session.error,
    }


def _error(status_code: int, error: str, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse({"error": error, "message": message, **extra}, status_code=status_code)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: FastAPI app.
    """

    app = FastAPI(title="Outlook Assistant")

    @app.exception_handler(DeviceCodeAuthRequired)
    def auth_required(request: Request, exc: DeviceCodeAuthRequired) -> JSONResponse:
        return _error(
            401,
            "authentication_required",
            exc.message,
            verification_uri=exc.verification_uri,
            user_code=exc.user_code,
        )

    @app.exception_handler(NotSignedIn)
    def not_signed_in(request: Request, exc: NotSignedIn) -> JSONResponse:
        return _error(409, "not_signed_in", str(exc))

    @app.exception_handler(OperationPending)
    def operation_pending(request: Request, exc: OperationPending) -> JSONResponse:
        return _error(409, "operation_pending", str(exc))

    @app.exception_handler(InvalidTransition)
    def invalid_transition(request: Request, exc: InvalidTransition) -> JSONResponse:
        return _error(409, "invalid_transition", str(exc), state=exc.state)

    @app.exception_handler(StaleReference)
    def stale_reference(request: Request, exc: StaleReference) -> JSONResponse:
        return _error(410, "stale_reference", str(exc), entry_id=exc.entry_id)

    @app.exception_handler(TransportFailure)
    def transport_failure(request: Request, exc: TransportFailure) -> JSONResponse:
        logger.error(f"Graph call failed: {exc}")
        return _error(502, "transport_failure", str(exc), upstream_status=exc.status_code)

    @app.get("/health")
    def health() -> dict[str, str]:
        """Health check endpoint.

        This is intentionally simple and should not perform external calls.

        Returns:
            dict[str, str]: Health payload.
        """

        return {"status": "ok"}

    @app.post("/api/session/sign-in")
    def sign_in(
        orchestrator: AssistantOrchestrator = Depends(get_orchestrator),
    ) -> dict[str, Any]:
        """Build the folder forest for the session.

        Returns:
            dict[str, Any]: The forest as nested folder objects.
        """

        forest = orchestrator.sign_in()
        return {
            "signed_in": True,
            "forest": [node.model_dump() for node in forest],
        }

    @app.post("/api/session/sign-out")
    def sign_out(
        orchestrator: AssistantOrchestrator = Depends(get_orchestrator),
    ) -> dict[str, Any]:
        """Discard the forest and open contact sessions."""

        orchestrator.sign_out()
        return {"signed_in": False}

    @app.post("/api/folders/suggest")
    def suggest_folder(
        payload: SuggestRequest,
        orchestrator: AssistantOrchestrator = Depends(get_orchestrator),
    ) -> dict[str, Any]:
        """Suggest a folder for the selected attachments.

        Expected request body:
            ``{"attachments": [{"id": "a1", "name": "invoice.pdf"}],
            "subject": "...", "selected_ids": ["a1"]}``

        ``selected_ids`` may be omitted to use the default selection.

        Returns:
            dict[str, Any]: ``kind``, ``node``, ``score`` and ``scope``.
        """

        outcome = orchestrator.suggest_folder(
            payload.attachments,
            subject=payload.subject,
            selected_ids=payload.selected_ids,
        )
        return {
            "kind": outcome.kind,
            "path": outcome.node.path if outcome.node else None,
            "node": (
                {"id": outcome.node.id, "name": outcome.node.name, "path_names": outcome.node.path_names}
                if outcome.node
                else None
            ),
            "score": outcome.score,
            "scope": outcome.scope,
        }

    @app.post("/api/contacts/check")
    def check_contact(
        payload: CheckRequest,
        orchestrator: AssistantOrchestrator = Depends(get_orchestrator),
    ) -> Any:
        """Extract a contact (unless given) and compare it with the directory.

        Returns:
            Any: Session payload, or 422 when neither mail nor record is given.
        """

        if payload.record is not None:
            record = payload.record
        elif payload.mail is not None:
            record = orchestrator.extract_contact(payload.mail)
        else:
            return _error(422, "invalid_request", "Provide either 'mail' or 'record'")

        session = orchestrator.check_contact(record)
        return _session_payload(session)

    @app.post("/api/contacts/confirm")
    def confirm_contact(
        payload: ContactActionRequest,
        orchestrator: AssistantOrchestrator = Depends(get_orchestrator),
    ) -> Any:
        """Create or update the contact of an open session.

        Returns:
            Any: Session payload, or 404 for an unknown identity.
        """

        try:
            session = orchestrator.confirm_contact(payload.identity, record=payload.record)
        except KeyError as e:
            return _error(404, "unknown_contact", str(e.args[0]) if e.args else str(e))
        return _session_payload(session)

    @app.post("/api/contacts/dismiss")
    def dismiss_contact(
        payload: ContactActionRequest,
        orchestrator: AssistantOrchestrator = Depends(get_orchestrator),
    ) -> Any:
        """Dismiss the offered create/update of an open session.

        Returns:
            Any: Session payload, or 404 for an unknown identity.
        """

        try:
            session = orchestrator.dismiss_contact(payload.identity)
        except KeyError as e:
            return _error(404, "unknown_contact", str(e.args[0]) if e.args else str(e))
        return _session_payload(session)

    return app


app = create_app()
