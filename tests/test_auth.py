from unittest.mock import MagicMock, patch

import pytest

from src.outlook_assistant.auth import TOKEN_CACHE_FILE, DeviceCodeAuthRequired, GraphAuthenticator
from src.outlook_assistant.config import Settings


def test_select_account_defaults_to_first_when_no_preferred_username() -> None:
    """Return the first cached account when no preference is configured."""

    settings = MagicMock()
    settings.outlook_account_username = None

    auth = GraphAuthenticator(settings)

    accounts = [
        {"username": "first@example.com"},
        {"username": "second@example.com"},
    ]

    assert auth._select_account(accounts) == accounts[0]


def test_select_account_matches_preferred_username_case_insensitive() -> None:
    """Select the cached account matching the preferred username."""

    settings = MagicMock()
    settings.outlook_account_username = "Second@Example.com"

    auth = GraphAuthenticator(settings)

    accounts = [
        {"username": "first@example.com"},
        {"username": "second@example.com"},
    ]

    assert auth._select_account(accounts) == accounts[1]


def test_select_account_raises_when_preferred_username_missing() -> None:
    """Raise a clear error when the preferred username is not in cache."""

    settings = MagicMock()
    settings.outlook_account_username = "missing@example.com"

    auth = GraphAuthenticator(settings)

    with pytest.raises(ValueError, match="OUTLOOK_ACCOUNT_USERNAME"):
        auth._select_account([{"username": "first@example.com"}])


def test_select_account_without_accounts() -> None:
    settings = MagicMock()
    settings.outlook_account_username = "someone@example.com"

    assert GraphAuthenticator(settings)._select_account([]) is None


def test_token_cache_file_defaults_to_home_directory() -> None:
    """A non-string (unset) token_cache_path falls back to the default file."""

    auth = GraphAuthenticator(MagicMock())
    assert auth.token_cache_file == TOKEN_CACHE_FILE


def test_token_cache_file_uses_configured_path(tmp_path) -> None:
    settings = Settings(_env_file=None, token_cache_path=str(tmp_path / "cache.json"))

    assert GraphAuthenticator(settings).token_cache_file == tmp_path / "cache.json"


def test_get_app_requires_client_id() -> None:
    settings = Settings(_env_file=None, azure_client_id=None)

    with pytest.raises(RuntimeError, match="AZURE_CLIENT_ID"):
        GraphAuthenticator(settings)._get_app()


def test_web_mode_raises_device_code_instructions(tmp_path) -> None:
    """In web mode the device flow is surfaced instead of printed."""

    settings = Settings(
        _env_file=None,
        azure_client_id="client",
        device_code_prompt_mode="web",
        token_cache_path=str(tmp_path / "cache.json"),
    )
    auth = GraphAuthenticator(settings)

    app = MagicMock()
    app.get_accounts.return_value = []
    app.initiate_device_flow.return_value = {
        "user_code": "ABCD1234",
        "verification_uri": "https://microsoft.com/devicelogin",
        "message": "Go to https://microsoft.com/devicelogin and enter ABCD1234",
    }
    auth._app = app

    with pytest.raises(DeviceCodeAuthRequired) as excinfo:
        auth.get_access_token()

    assert excinfo.value.user_code == "ABCD1234"
    assert excinfo.value.verification_uri == "https://microsoft.com/devicelogin"
    app.acquire_token_by_device_flow.assert_not_called()


def test_cached_token_is_used_silently(tmp_path) -> None:
    settings = Settings(
        _env_file=None,
        azure_client_id="client",
        token_cache_path=str(tmp_path / "cache.json"),
    )
    auth = GraphAuthenticator(settings)

    app = MagicMock()
    app.get_accounts.return_value = [{"username": "ann@x.com"}]
    app.acquire_token_silent.return_value = {"access_token": "tok"}
    app.token_cache.has_state_changed = False
    auth._app = app

    assert auth.get_auth_headers()["Authorization"] == "Bearer tok"
    app.initiate_device_flow.assert_not_called()


def test_client_credentials_flow() -> None:
    settings = Settings(
        _env_file=None,
        azure_client_id="client",
        azure_client_secret="secret",
        use_client_credentials=True,
    )
    auth = GraphAuthenticator(settings)

    with patch("src.outlook_assistant.auth.msal.ConfidentialClientApplication") as app_cls:
        app_cls.return_value.acquire_token_for_client.return_value = {"access_token": "app-tok"}
        assert auth.get_access_token() == "app-tok"

    app_cls.return_value.acquire_token_for_client.assert_called_once_with(
        scopes=GraphAuthenticator.GRAPH_APP_SCOPES
    )


def test_logout_removes_cache_file(tmp_path) -> None:
    cache_file = tmp_path / "cache.json"
    cache_file.write_text("{}")
    settings = Settings(_env_file=None, token_cache_path=str(cache_file))
    auth = GraphAuthenticator(settings)
    auth._app = MagicMock()

    auth.logout()

    assert not cache_file.exists()
    assert auth._app is None
