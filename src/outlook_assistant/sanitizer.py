"""Email body to plain text conversion.

Objective:
    Turn the raw body handed over by the mail host (often HTML) into plain
    text whose line structure survives, because signature parsing works line
    by line and relies on blank lines between blocks.

Responsibilities:
    - Strip non-content HTML elements (``<script>``, ``<style>``, metadata).
    - Map ``<br>`` and block elements to line breaks.
    - Normalize line endings, non-breaking spaces and runs of blank lines.
    - Provide email address helpers used by contact extraction.

High-level call tree:
    - :func:`body_to_text`
        - :func:`html_to_text` (HTML input)
            - :func:`normalize_text`
        - :func:`normalize_text` (text input)
    - :func:`extract_sender_domain`
"""

import re
from typing import Optional

from bs4 import BeautifulSoup

_BLOCK_TAGS = [
    "p",
    "div",
    "tr",
    "li",
    "table",
    "blockquote",
    "h1",
    "h2",
    "h3",
    "h4",
    "h5",
    "h6",
]


def normalize_text(text: str) -> str:
    """Normalize whitespace while keeping the line structure.

    - ``\\r\\n`` and ``\\r`` become ``\\n``.
    - Non-breaking spaces become regular spaces.
    - Trailing whitespace is removed from every line.
    - Three or more consecutive newlines collapse to one blank line.

    Args:
        text: Raw text.

    Returns:
        str: Normalized text.
    """
    if not text:
        return ""

    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\xa0", " ")
    text = "\n".join(line.rstrip() for line in text.split("\n"))
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def html_to_text(html_content: str) -> str:
    """Convert HTML to plain text, one visual line per text line.

    Args:
        html_content: Raw HTML string.

    Returns:
        str: Plain text.
    """
    if not html_content:
        return ""

    soup = BeautifulSoup(html_content, "html.parser")
    for element in soup(["script", "style", "head", "meta", "link", "title"]):
        element.decompose()

    for line_break in soup.find_all("br"):
        line_break.replace_with("\n")
    for block in soup.find_all(_BLOCK_TAGS):
        block.append("\n")

    return normalize_text(soup.get_text())


def body_to_text(body_content: str, content_type: str = "text") -> str:
    """Convert a mail body to plain text.

    This is the main entrypoint used by the orchestrator before signature
    extraction.

    Args:
        body_content: Raw email body content.
        content_type: Content type ("html" or "text").

    Returns:
        str: Plain text body.
    """
    if not body_content:
        return ""

    if (content_type or "").lower() == "html":
        return html_to_text(body_content)
    return normalize_text(body_content)


def extract_sender_domain(email_address: str) -> Optional[str]:
    """Extract the domain part from an email address.

    Args:
        email_address: Email address string.

    Returns:
        Optional[str]: Lowercased domain, or None if invalid.
    """
    if not email_address or "@" not in email_address:
        return None

    parts = email_address.strip().lower().split("@")
    if len(parts) == 2 and parts[1]:
        return parts[1]
    return None
