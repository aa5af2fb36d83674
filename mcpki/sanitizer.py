"""
Sanitization of backend-origin text.

Error messages relayed by the HTTP transport (connection errors, HTTP error
bodies) contain the full request URL and therefore the backend host and port.
Everything that may originate from the transport passes through here before it
is handed to an MCP client.
"""

from typing import Optional

PLACEHOLDER_URL = "https://<host>:<port>/..."


def sanitize(text: Optional[str], base_url: Optional[str]) -> Optional[str]:
    """
    Masks every occurrence of the backend base URL in the given text.

    E.g. 'All connection attempts failed for url
    "https://ca.internal:8443/v1/ca/CN=sub-ca/certificate/download"' becomes
    'All connection attempts failed for url
    "https://<host>:<port>/.../v1/ca/CN=sub-ca/certificate/download"'.

    Args:
        text: The response message or payload.
        base_url: The configured backend base URL.

    Returns:
        The sanitized text, or the text unchanged if the URL does not occur.
    """
    if text is None or not base_url:
        return text
    if base_url in text:
        return text.replace(base_url, PLACEHOLDER_URL)
    return text
