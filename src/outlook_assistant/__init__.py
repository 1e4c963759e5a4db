"""Outlook Assistant package.

Objective:
    Provide the inference engine behind an Outlook side panel:
    - Suggest a SharePoint folder for the attachments of the open email.
    - Extract contact details from the email signature and reconcile them
      with the user's Outlook contacts.

Key modules:
    - :mod:`src.outlook_assistant.text`:
        Shared tokenization and normalization helpers.
    - :mod:`src.outlook_assistant.tree_builder`:
        Depth-bounded folder forest built from an expansion policy.
    - :mod:`src.outlook_assistant.match_scorer`:
        Folder scoring strategies and the scope fallback chain.
    - :mod:`src.outlook_assistant.signature`:
        Signature block isolation and contact field extraction.
    - :mod:`src.outlook_assistant.reconciliation`:
        Contact comparison, state machine, pending-operation guard.
    - :mod:`src.outlook_assistant.graph_client`:
        Microsoft Graph collaborators (drive listing, contacts).
    - :mod:`src.outlook_assistant.orchestrator`:
        Session-level composition of the components.
    - :mod:`src.outlook_assistant.cli` / :mod:`src.outlook_assistant.webapp`:
        User-facing entrypoints.
"""

__version__ = "0.1.0"
