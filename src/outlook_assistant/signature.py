"""Signature block isolation and contact field extraction.

Objective:
    Pre-fill a contact from the signature of the open email. This is pure
    text processing: no network access, deterministic, and it never raises
    for string input.

Block isolation (:func:`extract_signature_block`):
    - If the sender's display name occurs literally in the body, the block
      runs from its first occurrence to the end of the body.
    - Otherwise the body is split on blank lines and the last non-empty
      segment is the block.

Field rules (:func:`parse_signature`):
    - name: the display name if it occurs (case-insensitively) in the
      block, else the first line that is not an email/phone/URL line and
      does not start with a digit or ``+``.
    - email: always the sender address.
    - phone: the longest phone-shaped match in the block.
    - postcode: the first ``1234 AB`` style token, scanning line by line.
    - organization: derived from the sender's domain
      (:func:`derive_organization`).

High-level call tree:
    - :func:`extract_contact`
        - :func:`extract_signature_block`
        - :func:`derive_organization`
        - :func:`parse_signature`
            - :func:`find_phone`
            - :func:`find_postcode`
            - :func:`_first_name_line`
"""

import re

from .models import ContactRecord
from .sanitizer import extract_sender_domain

# Optional "+", a digit, at least five digits/dashes/en-dashes/brackets/
# spaces, and a closing digit. Only horizontal whitespace, so a match never
# continues onto the next line.
PHONE_RE = re.compile(r"\+?\d[\d\-–()\t ]{5,}\d")

# Dutch-style postcode, e.g. "1234 AB" or "1234AB".
POSTCODE_RE = re.compile(r"\b\d{4} ?[A-Za-z]{2}\b")

_BLANK_LINE_RE = re.compile(r"\r?\n\s*\r?\n")
_URL_RE = re.compile(r"https?://", re.IGNORECASE)
_WWW_RE = re.compile(r"www\.", re.IGNORECASE)
_LEADING_NUMBER_RE = re.compile(r"^[+\d]")


def _lines(block: str) -> list[str]:
    return [line.strip() for line in block.split("\n") if line.strip()]


def extract_signature_block(body: str, sender_name: str = "") -> str:
    """
    Isolate the signature part of an email body.

    Args:
        body: Plain text body.
        sender_name: Sender display name (may be empty).

    Returns:
        str: Trimmed signature block ("" for an empty body).
    """
    body = body or ""
    if sender_name:
        index = body.find(sender_name)
        if index >= 0:
            return body[index:].strip()

    segments = [segment for segment in _BLANK_LINE_RE.split(body) if segment.strip()]
    return segments[-1].strip() if segments else ""


def find_phone(block: str) -> str:
    """Return the longest phone-shaped substring (first one on ties)."""
    best = ""
    for match in PHONE_RE.finditer(block or ""):
        if len(match.group(0)) > len(best):
            best = match.group(0)
    return best


def find_postcode(block: str) -> str:
    """Return the first postcode token found scanning line by line."""
    for line in _lines(block or ""):
        match = POSTCODE_RE.search(line)
        if match:
            return match.group(0)
    return ""


def _first_name_line(lines: list[str], sender_email: str) -> str:
    for line in lines:
        if sender_email and sender_email in line:
            continue
        if PHONE_RE.search(line):
            continue
        if _URL_RE.search(line) or _WWW_RE.search(line):
            continue
        if _LEADING_NUMBER_RE.match(line):
            continue
        return line
    return ""


def derive_organization(sender_email: str) -> str:
    """
    Guess the organization from the sender's domain.

    ``jan@acme-bouw.nl`` becomes ``Acme-bouw``. Returns ``""`` when the
    address has no domain.
    """
    domain = extract_sender_domain(sender_email or "")
    if not domain:
        return ""
    return domain.split(".")[0].capitalize()


def parse_signature(
    block: str,
    sender_name: str = "",
    sender_email: str = "",
    organization: str = "",
) -> ContactRecord:
    """
    Extract contact fields from a signature block.

    Args:
        block: Signature block (see :func:`extract_signature_block`).
        sender_name: Sender display name.
        sender_email: Sender email address, copied verbatim.
        organization: Organization to store on the record.

    Returns:
        ContactRecord: Extracted fields; unknown fields are ``""``.
    """
    block = block or ""
    sender_name = sender_name or ""
    sender_email = sender_email or ""

    if sender_name and sender_name.lower() in block.lower():
        name = sender_name
    else:
        name = _first_name_line(_lines(block), sender_email)

    return ContactRecord(
        name=name,
        email=sender_email,
        phone=find_phone(block),
        organization=organization or "",
        postcode=find_postcode(block),
    )


def extract_contact(body: str, sender_name: str = "", sender_email: str = "") -> ContactRecord:
    """
    Build a contact record from an email body and its sender.

    Args:
        body: Plain text body.
        sender_name: Sender display name.
        sender_email: Sender email address.

    Returns:
        ContactRecord: Extracted contact.
    """
    block = extract_signature_block(body, sender_name)
    return parse_signature(
        block,
        sender_name=sender_name,
        sender_email=sender_email,
        organization=derive_organization(sender_email),
    )
