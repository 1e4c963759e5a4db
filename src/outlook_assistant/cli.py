"""Command-line interface (CLI) entrypoint.

Objective:
    Provide a human-friendly CLI wrapper around
    :class:`src.outlook_assistant.orchestrator.AssistantOrchestrator`, mainly
    to try a folder policy or a signature outside Outlook.

Responsibilities:
    - Parse arguments (subcommand, verbosity).
    - Configure logging.
    - Invoke the orchestrator and print readable results.

High-level call tree:
    - :func:`main`
        - :func:`setup_logging`
        - ``tree``: :meth:`AssistantOrchestrator.sign_in` -> :func:`print_forest`
        - ``suggest``: :meth:`AssistantOrchestrator.sign_in`,
          :meth:`AssistantOrchestrator.suggest_folder` -> :func:`print_outcome`
        - ``contact``: :meth:`AssistantOrchestrator.extract_contact`,
          optionally :meth:`AssistantOrchestrator.check_contact` and
          :meth:`AssistantOrchestrator.confirm_contact` -> :func:`print_contact`
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from .config import get_settings
from .models import Attachment, ContactRecord, FolderNode, MailItem, MatchOutcome, ReconciliationState
from .orchestrator import AssistantOrchestrator


def setup_logging(level: str = "INFO") -> None:
    """
    Configure logging for the application.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )
    # urllib3 logs every connection at DEBUG; keep it quiet unless asked.
    if level.upper() != "DEBUG":
        logging.getLogger("urllib3").setLevel(logging.WARNING)


def print_forest(forest: list[FolderNode]) -> None:
    """
    Print a folder forest as an indented tree.

    Args:
        forest: Top-level folders.
    """
    if not forest:
        print("\nNo folders found.")
        return

    stack = [(node, 0) for node in reversed(forest)]
    while stack:
        node, level = stack.pop()
        print(f"{'  ' * level}- {node.name}")
        stack.extend((child, level + 1) for child in reversed(node.children))


def print_outcome(outcome: MatchOutcome) -> None:
    """
    Print a folder suggestion.

    Args:
        outcome: Suggestion returned by the orchestrator.
    """
    if outcome.kind == "none" or outcome.node is None:
        print("\nNo folder suggestion.")
        return

    if outcome.kind == "match":
        print(f"\nSuggested folder: {outcome.node.path}")
        print(f"  scope: {outcome.scope}  score: {outcome.score:g}")
    else:
        print(f"\nNo match; default folder: {outcome.node.path}")


def print_contact(record: ContactRecord, state: Optional[ReconciliationState] = None) -> None:
    """
    Print an extracted contact and, optionally, its reconciliation state.

    Args:
        record: Extracted contact.
        state: Reconciliation state, when a check was run.
    """
    print(f"\n{'='*40}")
    for label, value in (
        ("Name", record.name),
        ("Email", record.email),
        ("Phone", record.phone),
        ("Organization", record.organization),
        ("Postcode", record.postcode),
    ):
        print(f"{label:<13} {value or '-'}")
    if state is not None:
        print(f"{'Status':<13} {state.value}")
    print(f"{'='*40}\n")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Outlook Assistant - folder suggestions and signature contacts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s tree                                   Show the folder forest
  %(prog)s suggest "Acme invoice 2024.pdf" --subject "Acme order"
  %(prog)s contact --body-file mail.txt --sender-name "John Smith" --sender-email john@example.com --check
        """,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output")
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("tree", help="Build and print the folder forest")

    suggest = subparsers.add_parser("suggest", help="Suggest a folder for attachment names")
    suggest.add_argument("filenames", nargs="+", help="Attachment file names")
    suggest.add_argument("--subject", "-s", type=str, default="", help="Mail subject")

    contact = subparsers.add_parser("contact", help="Extract a contact from an email body")
    contact.add_argument("--body-file", type=Path, required=True, help="File holding the email body")
    contact.add_argument("--html", action="store_true", help="Treat the body as HTML")
    contact.add_argument("--sender-name", type=str, default="", help="Sender display name")
    contact.add_argument("--sender-email", type=str, default="", help="Sender email address")
    contact.add_argument("--check", action="store_true", help="Compare with existing contacts")
    contact.add_argument(
        "--save", action="store_true", help="Create or update the contact (implies --check)"
    )
    return parser


def main(args: Optional[list[str]] = None) -> int:
    """
    Main CLI entry point.

    This function is structured to be testable: pass an explicit ``args`` list
    instead of relying on ``sys.argv``.

    Args:
        args: Command line arguments (uses sys.argv if None).

    Returns:
        int: Exit code (0 for success, 1 for error).
    """
    parsed_args = _build_parser().parse_args(args)

    log_level = "DEBUG" if parsed_args.verbose else parsed_args.log_level
    setup_logging(log_level)

    logger = logging.getLogger(__name__)

    try:
        orchestrator = AssistantOrchestrator(settings=get_settings())

        if parsed_args.command == "tree":
            print_forest(orchestrator.sign_in())
            return 0

        if parsed_args.command == "suggest":
            attachments = [
                Attachment(id=str(index), name=name)
                for index, name in enumerate(parsed_args.filenames)
            ]
            orchestrator.sign_in()
            outcome = orchestrator.suggest_folder(
                attachments,
                subject=parsed_args.subject,
                selected_ids=[a.id for a in attachments],
            )
            print_outcome(outcome)
            return 0 if outcome.kind != "none" else 1

        mail = MailItem(
            body=parsed_args.body_file.read_text(encoding="utf-8"),
            body_type="html" if parsed_args.html else "text",
            sender_name=parsed_args.sender_name,
            sender_email=parsed_args.sender_email,
        )
        record = orchestrator.extract_contact(mail)
        if not (parsed_args.check or parsed_args.save):
            print_contact(record)
            return 0

        session = orchestrator.check_contact(record)
        print_contact(record, session.state)
        if parsed_args.save and session.state in (
            ReconciliationState.NOT_FOUND,
            ReconciliationState.CHANGED,
        ):
            orchestrator.confirm_contact(record.identity)
            print("Contact saved.")
        return 0

    except Exception as e:
        logger.exception("Fatal error")
        print(f"\nError: {e}\n")
        return 1


if __name__ == "__main__":
    sys.exit(main())
