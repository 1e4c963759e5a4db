"""Pydantic data models used across the application.

Objective:
    Centralize all strongly-typed data structures representing:
    - The partial folder forest built from the document library
    - Attachments and mail items supplied by the mail host
    - Match scoring outputs and the policy that drives them
    - Contact records extracted from signatures and directory entries
      returned by Microsoft Graph

Design notes:
    - Graph-facing models use Pydantic aliases to match Graph field names
      (e.g. ``companyName`` -> :attr:`GraphContact.company_name`) with
      ``populate_by_name=True`` so tests can use pythonic names.
    - Remote payloads are validated at the collaborator boundary
      (:mod:`src.outlook_assistant.graph_client`); a payload that does not
      validate is treated as a transport failure there.
    - :class:`FolderNode` is frozen: the forest is built once per session
      and only read afterwards.

High-level structure:
    - Namespace primitives:
        - :class:`NamespaceEntry`
        - :class:`FolderNode`
        - :func:`iter_nodes` / :func:`find_by_path`
    - Policy primitives:
        - :class:`ExpansionRule`
        - :class:`MatchStrategy`
        - :class:`ScopeTier`
        - :class:`FallbackChain`
    - Matching primitives:
        - :class:`Attachment`
        - :class:`MatchCandidate`
        - :class:`MatchOutcome`
    - Contact primitives:
        - :class:`ContactRecord`
        - :class:`DirectoryEntry`
        - :class:`ReconciliationState`
    - Graph wire models:
        - :class:`DriveItem`
        - :class:`GraphContact`
    - Host input:
        - :class:`MailItem`
"""

import fnmatch
from enum import Enum
from typing import Iterable, Iterator, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Upper bound for any expansion rule. Each extra level multiplies the number
# of listing calls by the fan-out of the library.
MAX_EXPANSION_DEPTH = 2

# Default acceptance thresholds per scoring strategy.
DEFAULT_SUBSTRING_THRESHOLD = 1.0
DEFAULT_OVERLAP_THRESHOLD = 0.4


class NamespaceEntry(BaseModel):
    """One child returned by a namespace listing."""

    id: str
    name: str
    is_container: bool = False


class FolderNode(BaseModel):
    """
    A folder in the partial forest built by the tree builder.

    Attributes:
        id: Drive item id.
        name: Folder display name.
        children: Discovered child folders (empty for unexpanded nodes).
        path_ids: Ids from the top of the forest down to this node.
        path_names: Names from the top of the forest down to this node.
    """

    id: str
    name: str
    children: list["FolderNode"] = Field(default_factory=list)
    path_ids: list[str]
    path_names: list[str]

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_path(self) -> "FolderNode":
        if len(self.path_ids) != len(self.path_names):
            raise ValueError("path_ids and path_names must have the same length")
        if not self.path_ids or self.path_ids[-1] != self.id:
            raise ValueError("path_ids must end with the node's own id")
        if self.path_names[-1] != self.name:
            raise ValueError("path_names must end with the node's own name")
        return self

    @property
    def path(self) -> str:
        """Human-readable path, e.g. ``Klanten/Acme/2024``."""
        return "/".join(self.path_names)

    @property
    def depth(self) -> int:
        """Depth in the forest; top-level folders have depth 1."""
        return len(self.path_ids)


def iter_nodes(forest: Iterable[FolderNode]) -> Iterator[FolderNode]:
    """Yield every node of a forest in pre-order.

    Args:
        forest: Top-level nodes.

    Yields:
        FolderNode: Each node, parents before children, siblings in order.
    """
    stack = list(reversed(list(forest)))
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def find_by_path(
    forest: Iterable[FolderNode], names: list[str]
) -> Optional[FolderNode]:
    """Resolve a node by its name path (case-insensitive).

    Args:
        forest: Top-level nodes.
        names: Folder names from the top of the forest, e.g.
            ``["Klanten"]`` or ``["Projecten", "Lopend"]``.

    Returns:
        Optional[FolderNode]: The node, or None when any segment is missing.
    """
    if not names:
        return None

    level: list[FolderNode] = list(forest)
    current: Optional[FolderNode] = None
    for name in names:
        wanted = name.strip().lower()
        current = next((n for n in level if n.name.lower() == wanted), None)
        if current is None:
            return None
        level = current.children
    return current


class ExpansionRule(BaseModel):
    """
    Describes how far to expand a top-level folder.

    Attributes:
        name: Folder name (case-insensitive) or ``fnmatch`` pattern.
        is_pattern: Treat ``name`` as a pattern instead of an exact name.
        max_depth: Number of levels to fetch below the expansion root.
        anchor: Optional child that must be located first; only that child
            is expanded.
    """

    name: str = Field(min_length=1)
    is_pattern: bool = False
    max_depth: int = Field(default=1, ge=0, le=MAX_EXPANSION_DEPTH)
    anchor: Optional[str] = None

    def matches(self, folder_name: str) -> bool:
        """Return True when this rule applies to ``folder_name``."""
        candidate = (folder_name or "").lower()
        if self.is_pattern:
            return fnmatch.fnmatchcase(candidate, self.name.lower())
        return candidate == self.name.strip().lower()


class MatchStrategy(str, Enum):
    """Scoring strategies available to a scope tier."""

    LONGEST_SUBSTRING = "longest_substring"
    TOKEN_OVERLAP = "token_overlap"


class ScopeTier(BaseModel):
    """
    One step of the fallback chain.

    Attributes:
        label: Name used in logs and outcomes (defaults to the scope path).
        scope_path: Name path of the scope root in the forest.
        strategy: Scoring strategy used within this scope.
        threshold: Minimum accepted score; defaults depend on the strategy.
    """

    label: str = ""
    scope_path: list[str] = Field(min_length=1)
    strategy: MatchStrategy = MatchStrategy.LONGEST_SUBSTRING
    threshold: Optional[float] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _fill_defaults(self) -> "ScopeTier":
        if not self.label:
            self.label = "/".join(self.scope_path)
        if self.threshold is None:
            if self.strategy == MatchStrategy.TOKEN_OVERLAP:
                self.threshold = DEFAULT_OVERLAP_THRESHOLD
            else:
                self.threshold = DEFAULT_SUBSTRING_THRESHOLD
        return self


class FallbackChain(BaseModel):
    """Ordered scope tiers plus the node to suggest when none accepts."""

    tiers: list[ScopeTier] = Field(default_factory=list)
    fallback_path: list[str] = Field(default_factory=list)


class Attachment(BaseModel):
    """Attachment metadata supplied by the mail host."""

    id: str
    name: str
    size: int = 0


class MatchCandidate(BaseModel):
    """A scored folder."""

    node: FolderNode
    score: float


class MatchOutcome(BaseModel):
    """
    Result of a folder suggestion.

    Attributes:
        kind: ``match`` (a candidate cleared a tier threshold),
            ``fallback`` (the configured default node) or ``none``.
        node: Suggested folder, None when ``kind == "none"``.
        score: Score of the accepted candidate (matches only).
        scope: Label of the tier that produced the match.
    """

    kind: Literal["match", "fallback", "none"]
    node: Optional[FolderNode] = None
    score: Optional[float] = None
    scope: Optional[str] = None


class ContactRecord(BaseModel):
    """
    Contact details extracted from a signature.

    Empty strings mean "unknown". The record stays mutable so the user can
    correct fields before saving.
    """

    name: str = ""
    email: str = ""
    phone: str = ""
    organization: str = ""
    postcode: str = ""

    @property
    def identity(self) -> str:
        """Key identifying the logical contact (email, else name)."""
        return (self.email or self.name).strip().lower()


class DirectoryEntry(BaseModel):
    """An existing contact as returned by the directory."""

    id: str
    email: str = ""
    phone: str = ""
    organization: str = ""
    name: str = ""
    postcode: str = ""


class ReconciliationState(str, Enum):
    """Lifecycle of one contact check."""

    CHECKING = "checking"
    NOT_FOUND = "not-found"
    UNCHANGED = "exists-unchanged"
    CHANGED = "exists-changed"
    IDLE = "idle"


class DriveItem(BaseModel):
    """Microsoft Graph ``driveItem`` (only the fields we select)."""

    id: str
    name: str
    folder: Optional[dict] = None

    def to_entry(self) -> NamespaceEntry:
        """Convert to a :class:`NamespaceEntry`."""
        return NamespaceEntry(id=self.id, name=self.name, is_container=self.folder is not None)


class GraphEmailAddress(BaseModel):
    """Graph ``emailAddress`` value."""

    address: Optional[str] = None
    name: Optional[str] = None


class GraphPhysicalAddress(BaseModel):
    """Graph ``physicalAddress`` value (postal code only)."""

    postal_code: Optional[str] = Field(default=None, alias="postalCode")

    model_config = ConfigDict(populate_by_name=True)


class GraphContact(BaseModel):
    """
    Outlook contact from Microsoft Graph.

    Only the first email address and first business phone take part in
    comparisons, mirroring how the panel writes contacts.
    """

    id: str
    display_name: Optional[str] = Field(default=None, alias="displayName")
    given_name: Optional[str] = Field(default=None, alias="givenName")
    email_addresses: list[GraphEmailAddress] = Field(default_factory=list, alias="emailAddresses")
    business_phones: list[Optional[str]] = Field(default_factory=list, alias="businessPhones")
    company_name: Optional[str] = Field(default=None, alias="companyName")
    home_address: Optional[GraphPhysicalAddress] = Field(default=None, alias="homeAddress")

    model_config = ConfigDict(populate_by_name=True)

    def to_entry(self) -> DirectoryEntry:
        """Flatten into a :class:`DirectoryEntry`; missing values become ``""``."""
        email = ""
        if self.email_addresses:
            email = self.email_addresses[0].address or ""
        phone = (self.business_phones[0] if self.business_phones else None) or ""
        postcode = ""
        if self.home_address:
            postcode = self.home_address.postal_code or ""
        return DirectoryEntry(
            id=self.id,
            email=email,
            phone=phone,
            organization=self.company_name or "",
            name=self.given_name or self.display_name or "",
            postcode=postcode,
        )


class MailItem(BaseModel):
    """
    The open email, as handed over by the mail host.

    Attributes:
        subject: Mail subject.
        body: Raw body content.
        body_type: ``text`` or ``html``.
        sender_name: Sender display name.
        sender_email: Sender email address.
        attachments: Attachment metadata.
    """

    subject: str = ""
    body: str = ""
    body_type: Literal["text", "html"] = "text"
    sender_name: str = ""
    sender_email: str = ""
    attachments: list[Attachment] = Field(default_factory=list)
