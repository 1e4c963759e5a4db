"""Microsoft Graph authentication.

Objective:
    Provide the access token the Graph collaborators attach to their
    requests. Token acquisition is glue around the engine: nothing here
    takes part in folder suggestion or contact reconciliation.

Responsibilities:
    - Manage MSAL ``PublicClientApplication`` or
      ``ConfidentialClientApplication`` lifecycle.
    - Persist and reload the MSAL token cache to/from disk.
    - Perform device-code authentication when no cached token is available
      (delegated permissions), or client credentials authentication
      (application permissions).
    - Provide ready-to-use HTTP headers for Graph API calls.

High-level call tree:
    - :class:`GraphAuthenticator`
        - :meth:`GraphAuthenticator.get_auth_headers`
            - :meth:`GraphAuthenticator.get_access_token`
                - :meth:`GraphAuthenticator._get_token_client_credentials`
                - :meth:`GraphAuthenticator._get_token_device_code`
                - :meth:`GraphAuthenticator._get_app`
                    - :meth:`GraphAuthenticator._load_token_cache`
                - :meth:`GraphAuthenticator._save_token_cache`

Operational notes:
    - With ``device_code_prompt_mode='web'`` the device-code instructions
      are raised as :class:`DeviceCodeAuthRequired` so the web API can
      return them instead of printing to stdout.
"""

import logging
from pathlib import Path
from typing import Any, Optional

import msal

from .config import Settings

logger = logging.getLogger(__name__)

# Token cache file location
TOKEN_CACHE_FILE = Path.home() / ".outlook_assistant_token_cache.json"


class DeviceCodeAuthRequired(RuntimeError):
    """Raised when interactive device-code authentication is required.

    Args:
        flow: MSAL device flow payload returned by ``initiate_device_flow``.
    """

    def __init__(self, flow: dict[str, Any]) -> None:
        super().__init__(flow.get("message") or "Device code authentication required")
        self.flow = flow

    @property
    def user_code(self) -> str:
        """Return the device code shown to the user."""

        return str(self.flow.get("user_code", ""))

    @property
    def verification_uri(self) -> str:
        """Return the verification URL."""

        return str(
            self.flow.get("verification_uri")
            or self.flow.get("verification_uri_complete")
            or "https://www.microsoft.com/link"
        )

    @property
    def message(self) -> str:
        """Return the MSAL-generated instruction message."""

        return str(self.flow.get("message") or "")


class GraphAuthenticator:
    """
    Handles Microsoft Graph API authentication using MSAL.

    Attributes:
        settings: Application settings containing Azure AD credentials.
        _app: MSAL public or confidential client application instance.
    """

    # Delegated scopes: browse the document library, manage contacts.
    GRAPH_SCOPES = [
        "https://graph.microsoft.com/Files.Read.All",
        "https://graph.microsoft.com/Sites.Read.All",
        "https://graph.microsoft.com/Contacts.ReadWrite",
    ]

    # Application scopes for client credentials flow
    GRAPH_APP_SCOPES = [
        "https://graph.microsoft.com/.default",
    ]

    def __init__(self, settings: Settings) -> None:
        """
        Initialize the authenticator with settings.

        Args:
            settings: Application settings with Azure AD credentials.
        """
        self.settings = settings
        self._app: Optional[msal.PublicClientApplication | msal.ConfidentialClientApplication] = None
        self._use_client_credentials = bool(settings.use_client_credentials)

    @property
    def token_cache_file(self) -> Path:
        """Location of the persisted token cache."""
        configured = getattr(self.settings, "token_cache_path", None)
        if isinstance(configured, str) and configured:
            return Path(configured).expanduser()
        return TOKEN_CACHE_FILE

    def _load_token_cache(self) -> msal.SerializableTokenCache:
        """
        Load token cache from file.

        If the file cannot be read or is invalid, the authenticator falls back
        to an empty cache.

        Returns:
            msal.SerializableTokenCache: Token cache instance.
        """
        cache = msal.SerializableTokenCache()
        cache_file = self.token_cache_file

        if cache_file.exists():
            try:
                cache.deserialize(cache_file.read_text())
                logger.debug("Loaded token cache from file")
            except Exception as e:
                logger.warning(f"Failed to load token cache: {e}")
        else:
            logger.debug("No token cache file found; starting with empty cache")
        return cache

    def _save_token_cache(self, cache: msal.SerializableTokenCache) -> None:
        """
        Save token cache to file when MSAL reports a change.

        Args:
            cache: Token cache to save.
        """
        if cache.has_state_changed:
            try:
                self.token_cache_file.write_text(cache.serialize())
                logger.debug("Saved token cache to file")
            except Exception as e:
                logger.warning(f"Failed to save token cache: {e}")

    def _get_app(self) -> msal.PublicClientApplication | msal.ConfidentialClientApplication:
        """
        Get or create MSAL client application.

        Returns:
            msal.PublicClientApplication | msal.ConfidentialClientApplication: MSAL app instance.

        Raises:
            RuntimeError: If required Azure AD settings are missing.
        """
        if self._app is None:
            if not self.settings.azure_client_id:
                raise RuntimeError("AZURE_CLIENT_ID must be set to access Microsoft Graph")
            authority = f"https://login.microsoftonline.com/{self.settings.azure_tenant_id}"

            if self._use_client_credentials:
                if not self.settings.azure_client_secret:
                    raise RuntimeError(
                        "use_client_credentials=true requires AZURE_CLIENT_SECRET to be set"
                    )
                self._app = msal.ConfidentialClientApplication(
                    client_id=self.settings.azure_client_id,
                    client_credential=self.settings.azure_client_secret,
                    authority=authority,
                )
                logger.debug("Created MSAL confidential client application (client credentials flow)")
            else:
                cache = self._load_token_cache()
                self._app = msal.PublicClientApplication(
                    client_id=self.settings.azure_client_id,
                    authority=authority,
                    token_cache=cache,
                )
                logger.debug("Created MSAL public client application (device code flow)")
        return self._app

    def _select_account(self, accounts: list[dict]) -> Optional[dict]:
        """Select a cached MSAL account.

        When ``settings.outlook_account_username`` is set, this selects the
        matching account by username (case-insensitive). Otherwise it returns
        the first cached account.

        Args:
            accounts: List of cached MSAL accounts.

        Returns:
            Optional[dict]: Selected account or None when no accounts exist.

        Raises:
            ValueError: If a preferred username is configured but not found.
        """
        if not accounts:
            return None

        preferred = (self.settings.outlook_account_username or "").strip()
        if not preferred:
            return accounts[0]

        preferred_lower = preferred.lower()
        for account in accounts:
            username = str(account.get("username", "")).strip().lower()
            if username and username == preferred_lower:
                return account

        available = [a.get("username") for a in accounts if a.get("username")]
        raise ValueError(
            "Configured OUTLOOK_ACCOUNT_USERNAME was not found in token cache. "
            f"preferred={preferred!r} available={available!r}"
        )

    def _get_token_client_credentials(self) -> str:
        """
        Acquire access token using client credentials flow.

        Returns:
            str: Valid access token for Graph API.

        Raises:
            RuntimeError: If token acquisition fails.
        """
        app = self._get_app()
        result = app.acquire_token_for_client(scopes=self.GRAPH_APP_SCOPES)

        if "access_token" in result:
            logger.debug("Successfully acquired token via client credentials")
            return result["access_token"]

        error_description = result.get("error_description", "Unknown error")
        error = result.get("error", "unknown")
        logger.error(f"Failed to acquire token: {error} - {error_description}")
        raise RuntimeError(f"Failed to acquire access token: {error_description}")

    def _get_token_device_code(self) -> str:
        """
        Acquire access token from the cache, or via device code flow.

        Returns:
            str: Valid access token for Graph API.

        Raises:
            DeviceCodeAuthRequired: In web prompt mode when no cached token exists.
            RuntimeError: If token acquisition fails.
        """
        app = self._get_app()

        accounts = app.get_accounts()
        if accounts:
            selected = self._select_account(accounts)
            result = app.acquire_token_silent(scopes=self.GRAPH_SCOPES, account=selected)
            if result and "access_token" in result:
                logger.debug("Successfully acquired token from cache")
                self._save_token_cache(app.token_cache)
                return result["access_token"]
            logger.debug(
                f"Silent acquisition failed for account {selected.get('username')}: "
                f"{result.get('error') if result else 'no result'}"
            )
        else:
            logger.debug("No cached accounts found")

        flow = app.initiate_device_flow(scopes=self.GRAPH_SCOPES)
        if "user_code" not in flow:
            error = flow.get("error_description", "Unknown error")
            raise RuntimeError(f"Failed to initiate device flow: {error}")

        if self.settings.device_code_prompt_mode == "web":
            raise DeviceCodeAuthRequired(flow)

        print("\n" + "=" * 60)
        print("AUTHENTICATION REQUIRED")
        print("=" * 60)
        print(f"\n{flow['message']}\n")
        print("=" * 60 + "\n")

        result = app.acquire_token_by_device_flow(flow)
        if "access_token" in result:
            logger.debug("Successfully authenticated")
            self._save_token_cache(app.token_cache)
            return result["access_token"]

        error_description = result.get("error_description", "Unknown error")
        error = result.get("error", "unknown")
        logger.error(f"Failed to acquire token: {error} - {error_description}")
        raise RuntimeError(f"Failed to acquire access token: {error_description}")

    def get_access_token(self) -> str:
        """
        Acquire access token for Microsoft Graph API.

        Returns:
            str: Valid access token for Graph API.
        """
        if self._use_client_credentials:
            return self._get_token_client_credentials()
        return self._get_token_device_code()

    def get_auth_headers(self) -> dict[str, str]:
        """
        Get HTTP headers with authorization for Graph API requests.

        Returns:
            dict[str, str]: Headers dictionary with Bearer token.
        """
        token = self.get_access_token()
        return {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    def logout(self) -> None:
        """
        Clear cached tokens and reset the MSAL application.
        """
        cache_file = self.token_cache_file
        if cache_file.exists():
            cache_file.unlink()
            logger.debug("Cleared token cache")
        self._app = None
