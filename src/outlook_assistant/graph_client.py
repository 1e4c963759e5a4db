"""Microsoft Graph collaborators for the document library and contacts.

Objective:
    Provide thin wrappers around the Graph endpoints the engine depends on.
    This module centralizes HTTP request construction, authentication
    headers, paging and Pydantic validation of responses, and turns every
    failure into :class:`src.outlook_assistant.errors.TransportFailure`.

Responsibilities:
    - Issue authenticated HTTP requests to Graph (via :mod:`requests`).
    - Resolve the drive of the SharePoint site.
    - List the child folders of a drive item (namespace service).
    - Find, create and update Outlook contacts (directory service).

High-level call tree:
    - :class:`GraphClient`
        - :meth:`GraphClient._make_request` (auth + error handling)
        - :meth:`GraphClient.get_all` (``@odata.nextLink`` paging)
        - :meth:`GraphClient.resolve_drive_id`
    - :class:`DriveNamespace`
        - :meth:`DriveNamespace.list_children`
    - :class:`ContactDirectory`
        - :meth:`ContactDirectory.find_by_filter`
            - :meth:`ContactDirectory.find_by_email`
            - :meth:`ContactDirectory.find_by_display_name`
        - :meth:`ContactDirectory.create`
        - :meth:`ContactDirectory.update`

Graph endpoints used:
    - ``GET /sites/{hostname}:{site_path}``
    - ``GET /sites/{site_id}/drive``
    - ``GET /drives/{drive_id}/items/{item_id}/children``
    - ``GET /me/contacts?$filter=...``
    - ``POST /me/contacts``
    - ``PATCH /me/contacts/{id}``

Error handling:
    - Non-2xx responses, network errors and undecodable bodies raise
      :class:`TransportFailure` with the status code and call context.
    - Payloads that fail model validation raise :class:`TransportFailure`.
    - A 404 on contact update raises :class:`StaleReference`; it is never
      turned into a create.
"""

import logging
from typing import Any, Optional
from urllib.parse import quote

import requests
from pydantic import ValidationError

from .auth import GraphAuthenticator
from .config import Settings
from .errors import StaleReference, TransportFailure
from .models import ContactRecord, DirectoryEntry, DriveItem, GraphContact, NamespaceEntry

logger = logging.getLogger(__name__)

CONTACT_FIELDS = "id,displayName,givenName,emailAddresses,businessPhones,companyName,homeAddress"


def _odata_quote(value: str) -> str:
    """Escape a value for use inside a single-quoted OData literal."""
    return (value or "").replace("'", "''")


def contact_payload(record: ContactRecord) -> dict[str, Any]:
    """
    Build the Graph contact body for a record.

    Args:
        record: Contact to write.

    Returns:
        dict[str, Any]: JSON body for create/update.
    """
    return {
        "givenName": record.name,
        "emailAddresses": [{"address": record.email, "name": record.name}],
        "businessPhones": [record.phone] if record.phone else [],
        "companyName": record.organization,
        "homeAddress": {"postalCode": record.postcode},
    }


class GraphClient:
    """
    Authenticated transport for Microsoft Graph.

    Attributes:
        settings: Application settings.
        auth: Graph API authenticator.
    """

    GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"

    def __init__(self, settings: Settings, auth: GraphAuthenticator) -> None:
        """
        Initialize Graph client.

        Args:
            settings: Application settings.
            auth: Graph API authenticator.
        """
        self.settings = settings
        self.auth = auth

    @property
    def user_root(self) -> str:
        """Endpoint prefix of the mailbox owner (``/me`` for delegated auth)."""
        if self.settings.use_client_credentials:
            upn = self.settings.target_user_principal_name
            if not upn:
                raise RuntimeError(
                    "use_client_credentials=true requires TARGET_USER_PRINCIPAL_NAME to be set"
                )
            return f"/users/{quote(upn, safe='@')}"
        return "/me"

    def _make_request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_data: Optional[dict] = None,
    ) -> dict:
        """Make an authenticated request to Microsoft Graph.

        Args:
            method: HTTP method (GET, POST, PATCH, DELETE).
            endpoint: API endpoint path, or an absolute URL (paging links).
            params: Query parameters.
            json_data: JSON body data.

        Returns:
            dict: Response JSON data, or ``{}`` for empty responses.

        Raises:
            TransportFailure: On network errors, non-2xx responses or
                non-JSON bodies.
        """
        if endpoint.startswith("http"):
            url = endpoint
        else:
            url = f"{self.GRAPH_BASE_URL}{endpoint}"
        context = f"{method} {endpoint.split('?')[0]}"
        headers = self.auth.get_auth_headers()

        try:
            response = requests.request(
                method=method,
                url=url,
                headers=headers,
                params=params,
                json=json_data,
                timeout=30,
            )
        except requests.RequestException as e:
            logger.error(f"Graph API request failed: {context} - {e}")
            raise TransportFailure(None, context, str(e)) from e

        if not response.ok:
            logger.error(f"Graph API error: {response.status_code} - {response.text}")
            raise TransportFailure(response.status_code, context, response.text)

        if response.status_code == 204 or not response.content:
            return {}

        try:
            payload = response.json()
        except ValueError as e:
            raise TransportFailure(response.status_code, context, "response is not JSON") from e
        if not isinstance(payload, dict):
            raise TransportFailure(response.status_code, context, "response is not a JSON object")
        return payload

    def get_all(self, endpoint: str, params: Optional[dict] = None) -> list[dict]:
        """Fetch a collection, following ``@odata.nextLink`` pages.

        Args:
            endpoint: Collection endpoint.
            params: Query parameters for the first page.

        Returns:
            list[dict]: All items across pages.

        Raises:
            TransportFailure: If any page fails or lacks a ``value`` list.
        """
        items: list[dict] = []
        payload = self._make_request("GET", endpoint, params=params)
        while True:
            value = payload.get("value")
            if not isinstance(value, list):
                raise TransportFailure(None, f"GET {endpoint}", "missing 'value' collection")
            items.extend(value)

            next_link = payload.get("@odata.nextLink")
            if not next_link:
                break
            payload = self._make_request("GET", next_link)
        return items

    def resolve_drive_id(self, hostname: str, site_path: str) -> str:
        """Resolve the default document library of a SharePoint site.

        Args:
            hostname: SharePoint hostname, e.g. ``contoso.sharepoint.com``.
            site_path: Server-relative site path, e.g. ``/sites/Data``.

        Returns:
            str: Drive id.

        Raises:
            TransportFailure: If the site or drive cannot be fetched.
        """
        if not hostname:
            raise RuntimeError("SHAREPOINT_HOSTNAME must be set when DRIVE_ID is not configured")

        path = "/" + site_path.strip("/")
        site = self._make_request("GET", f"/sites/{hostname}:{path}")
        site_id = site.get("id")
        if not site_id:
            raise TransportFailure(None, f"GET /sites/{hostname}:{path}", "site has no id")

        drive = self._make_request("GET", f"/sites/{site_id}/drive")
        drive_id = drive.get("id")
        if not drive_id:
            raise TransportFailure(None, f"GET /sites/{site_id}/drive", "drive has no id")

        logger.debug(f"Resolved drive {drive_id} for site {hostname}{path}")
        return drive_id


class DriveNamespace:
    """
    Namespace service over a drive's folder hierarchy.

    Attributes:
        client: Graph transport.
        drive_id: Drive holding the folders.
    """

    def __init__(self, client: GraphClient, drive_id: str) -> None:
        self.client = client
        self.drive_id = drive_id

    def list_children(self, container_id: str) -> list[NamespaceEntry]:
        """List the children of a drive item.

        Args:
            container_id: Drive item id (``root`` for the library root).

        Returns:
            list[NamespaceEntry]: Children in listing order.

        Raises:
            TransportFailure: If the listing fails or an item is malformed.
        """
        endpoint = (
            f"/drives/{quote(self.drive_id, safe='!')}"
            f"/items/{quote(container_id, safe='!')}/children"
        )
        params = {"$select": "id,name,folder", "$top": 200}

        entries = []
        for item in self.client.get_all(endpoint, params=params):
            try:
                entries.append(DriveItem.model_validate(item).to_entry())
            except ValidationError as e:
                raise TransportFailure(None, f"GET {endpoint}", f"malformed drive item: {e}") from e
        return entries


class ContactDirectory:
    """
    Directory service over the mailbox owner's Outlook contacts.

    Attributes:
        client: Graph transport.
    """

    def __init__(self, client: GraphClient) -> None:
        self.client = client

    def find_by_filter(self, odata_filter: str) -> Optional[DirectoryEntry]:
        """Return the first contact matching an OData filter.

        Args:
            odata_filter: ``$filter`` expression.

        Returns:
            Optional[DirectoryEntry]: The entry, or None when nothing matches.

        Raises:
            TransportFailure: If the query fails or the contact is malformed.
        """
        endpoint = f"{self.client.user_root}/contacts"
        params = {"$filter": odata_filter, "$top": 1, "$select": CONTACT_FIELDS}
        payload = self.client._make_request("GET", endpoint, params=params)

        value = payload.get("value")
        if not isinstance(value, list):
            raise TransportFailure(None, f"GET {endpoint}", "missing 'value' collection")
        if not value:
            return None

        try:
            return GraphContact.model_validate(value[0]).to_entry()
        except ValidationError as e:
            raise TransportFailure(None, f"GET {endpoint}", f"malformed contact: {e}") from e

    def find_by_email(self, email: str) -> Optional[DirectoryEntry]:
        """Find a contact by email address."""
        return self.find_by_filter(
            f"emailAddresses/any(a:a/address eq '{_odata_quote(email)}')"
        )

    def find_by_display_name(self, name: str) -> Optional[DirectoryEntry]:
        """Find a contact by exact display name."""
        return self.find_by_filter(f"displayName eq '{_odata_quote(name)}'")

    def create(self, record: ContactRecord) -> str:
        """Create a contact.

        Args:
            record: Contact to create.

        Returns:
            str: Id of the new contact.

        Raises:
            TransportFailure: If the call fails or returns no id.
        """
        endpoint = f"{self.client.user_root}/contacts"
        payload = self.client._make_request("POST", endpoint, json_data=contact_payload(record))
        contact_id = payload.get("id")
        if not contact_id:
            raise TransportFailure(None, f"POST {endpoint}", "created contact has no id")
        logger.debug(f"Created contact {contact_id} for {record.email}")
        return contact_id

    def update(self, entry_id: str, record: ContactRecord) -> None:
        """Update an existing contact.

        Args:
            entry_id: Id of the contact to patch.
            record: New contact values.

        Raises:
            StaleReference: If the contact no longer exists (404).
            TransportFailure: On any other failure.
        """
        endpoint = f"{self.client.user_root}/contacts/{quote(entry_id, safe='')}"
        try:
            self.client._make_request("PATCH", endpoint, json_data=contact_payload(record))
        except TransportFailure as e:
            if e.status_code == 404:
                raise StaleReference(entry_id) from e
            raise
        logger.debug(f"Updated contact {entry_id}")
