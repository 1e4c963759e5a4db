"""Error taxonomy shared by the engine and its collaborators.

Collaborator failures are raised once and propagated to the immediate
caller; nothing in this package retries. Two situations are deliberately
not errors: a missing expansion anchor folder (the entry is skipped) and a
signature without a usable name line (the name stays empty).
"""

from typing import Optional


class AssistantError(RuntimeError):
    """Base class for all errors raised by this package."""


class TransportFailure(AssistantError):
    """A collaborator returned a non-success or malformed response.

    Args:
        status_code: HTTP status code, or None for network/decoding errors.
        context: Short description of the failed call (method + endpoint).
        detail: Response text or underlying error message.
    """

    def __init__(
        self,
        status_code: Optional[int],
        context: str,
        detail: str = "",
    ) -> None:
        self.status_code = status_code
        self.context = context
        self.detail = detail
        status = status_code if status_code is not None else "n/a"
        message = f"{context} failed (status {status})"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class StaleReference(AssistantError):
    """An update targeted a directory entry that no longer exists."""

    def __init__(self, entry_id: str) -> None:
        super().__init__(f"Directory entry {entry_id!r} no longer exists")
        self.entry_id = entry_id


class OperationPending(AssistantError):
    """A create/update is already in flight for the same contact."""

    def __init__(self, key: str) -> None:
        super().__init__(f"A contact operation is already pending for {key!r}")
        self.key = key


class InvalidTransition(AssistantError):
    """An action is not allowed in the current reconciliation state."""

    def __init__(self, state: str, action: str) -> None:
        super().__init__(f"Cannot {action} while reconciliation state is {state!r}")
        self.state = state
        self.action = action
