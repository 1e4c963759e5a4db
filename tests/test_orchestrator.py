from unittest.mock import MagicMock

import pytest

from src.outlook_assistant.config import Settings
from src.outlook_assistant.errors import OperationPending, TransportFailure
from src.outlook_assistant.models import (
    Attachment,
    ContactRecord,
    DirectoryEntry,
    MailItem,
    ReconciliationState,
)
from src.outlook_assistant.orchestrator import AssistantOrchestrator, NotSignedIn

DRIVE_ITEMS = {
    "root": [
        {"id": "k", "name": "Klanten", "folder": {}},
        {"id": "a", "name": "Inbox archief", "folder": {}},
    ],
    "k": [
        {"id": "k1", "name": "Acme Corp", "folder": {}},
        {"id": "k2", "name": "Beta", "folder": {}},
    ],
}


def make_settings(**overrides) -> Settings:
    values = {
        "drive_id": "d1",
        "expansion_policy": [{"name": "Klanten", "max_depth": 1}],
        "scope_chain": [{"scope_path": ["Klanten"], "threshold": 4}],
        "fallback_path": ["Inbox archief"],
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_orchestrator(**overrides) -> AssistantOrchestrator:
    orchestrator = AssistantOrchestrator(settings=make_settings(**overrides))

    def get_all(endpoint, params=None):
        container_id = endpoint.rsplit("/items/", 1)[1].split("/")[0]
        return DRIVE_ITEMS.get(container_id, [])

    orchestrator.graph_client = MagicMock()
    orchestrator.graph_client.get_all.side_effect = get_all
    orchestrator.directory = MagicMock()
    orchestrator.reconciliation.directory = orchestrator.directory
    return orchestrator


def test_suggest_before_sign_in_is_rejected() -> None:
    orchestrator = make_orchestrator()

    with pytest.raises(NotSignedIn):
        orchestrator.suggest_folder([Attachment(id="1", name="Acme.pdf")])


def test_sign_in_builds_forest_from_configured_drive() -> None:
    orchestrator = make_orchestrator()

    forest = orchestrator.sign_in()

    assert orchestrator.is_signed_in
    assert [n.name for n in forest] == ["Klanten", "Inbox archief"]
    assert [c.name for c in forest[0].children] == ["Acme Corp", "Beta"]
    orchestrator.graph_client.resolve_drive_id.assert_not_called()


def test_sign_in_resolves_drive_when_not_configured() -> None:
    orchestrator = make_orchestrator(drive_id=None, sharepoint_hostname="contoso.sharepoint.com")
    orchestrator.graph_client.resolve_drive_id.return_value = "d2"

    orchestrator.sign_in()

    orchestrator.graph_client.resolve_drive_id.assert_called_once_with(
        "contoso.sharepoint.com", "/sites/Data"
    )
    endpoint = orchestrator.graph_client.get_all.call_args_list[0].args[0]
    assert endpoint.startswith("/drives/d2/")


def test_failed_sign_in_leaves_session_signed_out() -> None:
    orchestrator = make_orchestrator()
    orchestrator.graph_client.get_all.side_effect = TransportFailure(401, "GET /drives/d1")

    with pytest.raises(TransportFailure):
        orchestrator.sign_in()

    assert not orchestrator.is_signed_in


def test_suggest_folder_uses_default_selection() -> None:
    """Inline images are ignored when no selection is given."""

    orchestrator = make_orchestrator()
    orchestrator.sign_in()

    outcome = orchestrator.suggest_folder(
        [
            Attachment(id="1", name="image001.png"),
            Attachment(id="2", name="Acme Corp order.pdf"),
        ],
        subject="Re: order",
    )

    assert outcome.kind == "match"
    assert outcome.node.path == "Klanten/Acme Corp"


def test_suggest_folder_respects_selection_and_falls_back() -> None:
    orchestrator = make_orchestrator()
    orchestrator.sign_in()

    outcome = orchestrator.suggest_folder(
        [
            Attachment(id="1", name="Acme Corp order.pdf"),
            Attachment(id="2", name="holiday.jpg"),
        ],
        selected_ids=["2"],
    )

    assert outcome.kind == "fallback"
    assert outcome.node.name == "Inbox archief"


def test_sign_out_discards_forest_and_sessions() -> None:
    orchestrator = make_orchestrator()
    orchestrator.sign_in()
    orchestrator.directory.find_by_email.return_value = None
    orchestrator.check_contact(ContactRecord(email="a@x.com"))

    orchestrator.sign_out()

    assert not orchestrator.is_signed_in
    assert orchestrator.get_session("a@x.com") is None


def test_extract_contact_from_html_mail() -> None:
    orchestrator = make_orchestrator()
    mail = MailItem(
        body="<p>Hi,</p><p>John Smith<br>+31 6 1234 5678<br>1234 AB Amsterdam</p>",
        body_type="html",
        sender_name="John Smith",
        sender_email="john@example.com",
    )

    record = orchestrator.extract_contact(mail)

    assert record.name == "John Smith"
    assert record.phone == "+31 6 1234 5678"
    assert record.postcode == "1234 AB"
    assert record.organization == "Example"


def test_contact_cycle_with_user_edit() -> None:
    orchestrator = make_orchestrator()
    orchestrator.directory.find_by_email.return_value = None
    orchestrator.directory.create.return_value = "new-1"

    session = orchestrator.check_contact(ContactRecord(name="Ann", email="A@x.com"))
    assert session.state == ReconciliationState.NOT_FOUND
    assert orchestrator.get_session("a@x.com") is session

    edited = ContactRecord(name="Ann", email="A@x.com", phone="123")
    result = orchestrator.confirm_contact("A@x.com", record=edited)

    assert result.state == ReconciliationState.IDLE
    assert result.created_id == "new-1"
    orchestrator.directory.create.assert_called_once_with(edited)


def test_dismiss_contact() -> None:
    orchestrator = make_orchestrator()
    orchestrator.directory.find_by_email.return_value = None
    orchestrator.check_contact(ContactRecord(email="a@x.com"))

    assert orchestrator.dismiss_contact("a@x.com").state == ReconciliationState.IDLE
    orchestrator.directory.create.assert_not_called()


def test_unknown_contact_identity() -> None:
    orchestrator = make_orchestrator()

    with pytest.raises(KeyError):
        orchestrator.confirm_contact("nobody@x.com")


def test_confirm_with_edited_email_while_update_pending_is_rejected() -> None:
    """A second save that edits the email still targets the in-flight contact."""

    orchestrator = make_orchestrator()
    orchestrator.directory.find_by_email.return_value = DirectoryEntry(
        id="c1", email="a@x.com", phone="123", organization="Acme"
    )
    orchestrator.check_contact(
        ContactRecord(name="Ann", email="a@x.com", phone="999", organization="Acme")
    )
    edited = ContactRecord(name="Ann", email="ann@x.com", phone="999", organization="Acme")

    def update(entry_id, record):
        with pytest.raises(OperationPending):
            orchestrator.confirm_contact("a@x.com", record=edited)
        session = orchestrator.get_session("a@x.com")
        assert session is not None
        assert session.record.email == "a@x.com"

    orchestrator.directory.update.side_effect = update

    result = orchestrator.confirm_contact("a@x.com")

    assert orchestrator.directory.update.call_count == 1
    assert result.state == ReconciliationState.IDLE


def test_finished_sessions_are_dropped() -> None:
    orchestrator = make_orchestrator()
    orchestrator.directory.find_by_email.return_value = None
    orchestrator.directory.create.return_value = "new-1"

    orchestrator.check_contact(ContactRecord(email="a@x.com"))
    orchestrator.confirm_contact("a@x.com")
    orchestrator.check_contact(ContactRecord(email="b@x.com"))
    orchestrator.dismiss_contact("b@x.com")

    assert orchestrator.get_session("a@x.com") is None
    assert orchestrator.get_session("b@x.com") is None
    with pytest.raises(KeyError):
        orchestrator.confirm_contact("a@x.com")


def test_unchanged_contact_is_not_kept() -> None:
    orchestrator = make_orchestrator()
    orchestrator.directory.find_by_email.return_value = DirectoryEntry(
        id="c1", email="a@x.com", phone="123", organization="Acme"
    )

    session = orchestrator.check_contact(
        ContactRecord(email="a@x.com", phone="123", organization="Acme")
    )

    assert session.state == ReconciliationState.UNCHANGED
    assert orchestrator.get_session("a@x.com") is None


def test_failed_save_drops_session() -> None:
    orchestrator = make_orchestrator()
    orchestrator.directory.find_by_email.return_value = None
    orchestrator.directory.create.side_effect = TransportFailure(503, "POST /me/contacts")
    orchestrator.check_contact(ContactRecord(email="a@x.com"))

    with pytest.raises(TransportFailure):
        orchestrator.confirm_contact("a@x.com")

    assert orchestrator.get_session("a@x.com") is None


def test_rejected_save_keeps_in_flight_session() -> None:
    orchestrator = make_orchestrator()
    orchestrator.directory.find_by_email.return_value = None
    session = orchestrator.check_contact(ContactRecord(email="a@x.com"))

    with orchestrator.reconciliation.guard.hold("a@x.com"):
        with pytest.raises(OperationPending):
            orchestrator.confirm_contact("a@x.com")

    assert orchestrator.get_session("a@x.com") is session
    assert session.state == ReconciliationState.NOT_FOUND
