"""Application configuration and settings.

Objective:
    Provide a single source of truth for runtime configuration used across the
    application (Graph auth, document library location, folder suggestion
    policy and contact lookup behavior).

Responsibilities:
    - Load environment-driven settings via :class:`Settings` (Pydantic
      BaseSettings).
    - Carry the deployment-specific folder policy: which top-level folders
      to expand (:attr:`Settings.expansion_policy`) and which scopes to
      search in which order (:attr:`Settings.scope_chain`,
      :attr:`Settings.fallback_path`). The engine itself knows no folder
      names.

High-level call tree:
    - :func:`get_settings` -> returns :class:`Settings`
    - :class:`Settings`
        - :attr:`Settings.fallback_chain`

Operational notes:
    - ``Settings`` loads from ``.env`` by default via ``pydantic-settings``.
    - List-valued fields are given as JSON, e.g.
      ``EXPANSION_POLICY='[{"name": "Klanten", "max_depth": 1}]'``.
    - Most modules accept a ``Settings`` object explicitly to enable testing;
      the orchestrator falls back to :func:`get_settings` when not provided.
"""

from typing import Literal, Optional
import logging

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import ExpansionRule, FallbackChain, ScopeTier

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    The settings model is intentionally flat and human-editable via `.env`.
    Most fields map directly to environment variables.

    Attributes:
        azure_client_id: Azure AD application client ID.
        azure_client_secret: Azure AD application client secret.
        azure_tenant_id: Azure AD tenant ID.
        sharepoint_hostname: SharePoint host holding the document library.
        sharepoint_site_path: Server-relative site path.
        drive_id: Explicit drive id; skips site resolution when set.
        namespace_root_id: Drive item id the forest is built from.
        expansion_policy: Rules selecting which folders to expand.
        scope_chain: Ordered scope tiers for folder suggestions.
        fallback_path: Folder suggested when no tier accepts a candidate.
        contact_lookup: Field used to find an existing contact.
        log_level: Logging level.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Azure AD Configuration
    azure_client_id: Optional[str] = Field(
        default=None, description="Azure AD application client ID"
    )
    azure_client_secret: Optional[str] = Field(
        default=None, description="Azure AD application client secret (for client credentials flow)"
    )
    azure_tenant_id: str = Field(
        default="organizations", description="Azure AD tenant ID"
    )

    outlook_account_username: Optional[str] = Field(
        default=None,
        description=(
            "Preferred account username to select from the MSAL token cache. "
            "If omitted, the first cached account is used."
        ),
    )

    device_code_prompt_mode: str = Field(
        default="console",
        description=(
            "How to surface device-code authentication instructions. "
            "Use 'console' to print to stdout. Use 'web' to raise a structured exception so the web API can return it."
        ),
    )

    use_client_credentials: bool = Field(
        default=False,
        description=(
            "Use client credentials flow instead of device code flow. "
            "Requires an organizational tenant and application permissions."
        ),
    )

    target_user_principal_name: Optional[str] = Field(
        default=None,
        description=(
            "User principal name (email) whose contacts are used with the client "
            "credentials flow. Required when using application permissions."
        ),
    )

    token_cache_path: Optional[str] = Field(
        default=None,
        description="Path of the MSAL token cache file (defaults to the user's home directory)",
    )

    # Document library
    sharepoint_hostname: str = Field(
        default="", description="SharePoint hostname, e.g. contoso.sharepoint.com"
    )
    sharepoint_site_path: str = Field(
        default="/sites/Data", description="Server-relative path of the SharePoint site"
    )
    drive_id: Optional[str] = Field(
        default=None, description="Drive id of the document library (skips site lookup)"
    )
    namespace_root_id: str = Field(
        default="root", description="Drive item id the folder forest starts from"
    )

    # Folder suggestion policy
    expansion_policy: list[ExpansionRule] = Field(
        default_factory=list, description="Which top-level folders to expand, and how deep"
    )
    scope_chain: list[ScopeTier] = Field(
        default_factory=list, description="Scopes searched for a suggestion, in order"
    )
    fallback_path: list[str] = Field(
        default_factory=list, description="Folder suggested when no scope yields a match"
    )

    # Contacts
    contact_lookup: Literal["email", "display_name"] = Field(
        default="email", description="How existing contacts are looked up"
    )

    log_level: str = Field(default="INFO", description="Logging level")

    @property
    def fallback_chain(self) -> FallbackChain:
        """
        Assemble the scorer's fallback chain from the flat settings.

        Returns:
            FallbackChain: Tiers and fallback path.
        """
        if not self.scope_chain and not self.fallback_path:
            logger.debug("No scope chain or fallback configured; suggestions are disabled")
        return FallbackChain(tiers=list(self.scope_chain), fallback_path=list(self.fallback_path))


def get_settings() -> Settings:
    """
    Load and return application settings.

    This helper is a convenience for production code. For tests, you typically
    construct a :class:`Settings` instance directly or pass a mocked settings
    object.

    Returns:
        Settings: Application settings instance.

    Raises:
        ValidationError: If an environment variable does not validate.
    """
    return Settings()
