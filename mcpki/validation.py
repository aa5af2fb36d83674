"""
Validation of tool input.

Every input class has a predicate (is_valid_*) and an assert wrapper
(assert_valid_*). The assert wrappers return a ValidatedInput or raise an MCP
INVALID_PARAMS error carrying the field name and the rejected value. The value
is the caller's own input, so echoing it back is safe.
"""

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from cryptography import x509
from cryptography.x509.oid import NameOID

from .errors import invalid_params_error

logger = logging.getLogger(__name__)

DN_FORBIDDEN_PATTERN = re.compile(r"[~?`!|%$;^&{}\x00\r\t\n\\\"]")

NAME_PATTERN = re.compile(r"[A-Za-z0-9_\-@.]+")

EMAIL_PATTERN = re.compile(
    r"(?=[^@]{1,64}@)[A-Za-z0-9_-]+(?:\.[A-Za-z0-9_-]+)*"
    r"@(?:[A-Za-z0-9][A-Za-z0-9-]*\.)+[A-Za-z]{2,}"
)

SERIAL_NUMBER_HEX_PATTERN = re.compile(r"[0-9a-fA-F]+")

PEM_BEGIN_PATTERN = re.compile(r"-----BEGIN ([A-Z0-9 ]+)-----")

# Text between the BEGIN and END boundaries, whitespace on both ends
PEM_BODY_PATTERN = re.compile(r"\s[A-Za-z0-9+/=\s]*\s")

REVOCATION_REASONS = (
    "NOT_REVOKED",
    "UNSPECIFIED",
    "KEY_COMPROMISE",
    "CA_COMPROMISE",
    "AFFILIATION_CHANGED",
    "SUPERSEDED",
    "CESSATION_OF_OPERATION",
    "CERTIFICATE_HOLD",
    "REMOVE_FROM_CRL",
    "PRIVILEGES_WITHDRAWN",
    "AA_COMPROMISE",
)

# Attribute types accepted in distinguished names, on top of the RFC 4514 set.
DN_ATTRIBUTE_TYPES = {
    "CN": NameOID.COMMON_NAME,
    "L": NameOID.LOCALITY_NAME,
    "ST": NameOID.STATE_OR_PROVINCE_NAME,
    "O": NameOID.ORGANIZATION_NAME,
    "OU": NameOID.ORGANIZATIONAL_UNIT_NAME,
    "C": NameOID.COUNTRY_NAME,
    "STREET": NameOID.STREET_ADDRESS,
    "DC": NameOID.DOMAIN_COMPONENT,
    "UID": NameOID.USER_ID,
    "E": NameOID.EMAIL_ADDRESS,
    "EMAILADDRESS": NameOID.EMAIL_ADDRESS,
    "SERIALNUMBER": NameOID.SERIAL_NUMBER,
    "SN": NameOID.SURNAME,
    "SURNAME": NameOID.SURNAME,
    "GIVENNAME": NameOID.GIVEN_NAME,
    "T": NameOID.TITLE,
    "TITLE": NameOID.TITLE,
    "INITIALS": NameOID.INITIALS,
    "GENERATION": NameOID.GENERATION_QUALIFIER,
    "DNQUALIFIER": NameOID.DN_QUALIFIER,
    "PSEUDONYM": NameOID.PSEUDONYM,
    "BUSINESSCATEGORY": NameOID.BUSINESS_CATEGORY,
    "POSTALCODE": NameOID.POSTAL_CODE,
    "ORGANIZATIONIDENTIFIER": NameOID.ORGANIZATION_IDENTIFIER,
}


class InputKind(Enum):
    """The input classes checked by this module."""

    DISTINGUISHED_NAME = "distinguished_name"
    SHORT_NAME = "short_name"
    EMAIL_ADDRESS = "email_address"
    PASSWORD = "password"
    SERIAL_NUMBER_HEX = "serial_number_hex"
    REVOCATION_REASON = "revocation_reason"
    PEM_BLOB = "pem_blob"


@dataclass(frozen=True)
class ValidatedInput:
    """A tool argument that passed its validator."""

    kind: InputKind
    field: str
    value: str
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    rule: str = ""

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        # Never print passwords in logs or tracebacks.
        shown = "***" if self.kind is InputKind.PASSWORD else self.value
        return f"ValidatedInput(kind={self.kind.value}, field={self.field}, value={shown!r})"


def _in_range(value: str, min_length: int, max_length: int) -> bool:
    return min_length <= len(value) <= max_length


def _normalize_dn(dn: str) -> str:
    """Trims whitespace around RDN separators and upper-cases attribute types."""
    rdns = []
    for rdn in dn.split(","):
        attributes = []
        for attribute in rdn.split("+"):
            attr_type, sep, attr_value = attribute.partition("=")
            attributes.append(f"{attr_type.strip().upper()}{sep}{attr_value.strip()}")
        rdns.append("+".join(attributes))
    return ",".join(rdns)


def is_valid_dn(dn: Optional[str], min_length: int, max_length: int) -> bool:
    """
    Validates if the given distinguished name (DN) meets length requirements,
    contains no forbidden characters and parses as an X.500 name.

    Args:
        dn: The distinguished name to validate.
        min_length: Minimum allowed length of the DN.
        max_length: Maximum allowed length of the DN.

    Returns:
        True if the DN is valid, False otherwise.
    """
    if dn is None or not isinstance(dn, str):
        logger.warning("DN is missing.")
        return False
    if not _in_range(dn, min_length, max_length):
        logger.warning(f"DN length out of range: {len(dn)}.")
        return False
    if DN_FORBIDDEN_PATTERN.search(dn):
        logger.warning("DN contains forbidden characters.")
        return False
    try:
        x509.Name.from_rfc4514_string(
            _normalize_dn(dn), attr_name_overrides=DN_ATTRIBUTE_TYPES
        )
    except ValueError as e:
        logger.warning(f"Invalid DN: {e}.")
        return False
    return True


def assert_valid_dn(
    dn: Optional[str], min_length: int, max_length: int, field: str = "dn"
) -> ValidatedInput:
    """
    Asserts that the provided distinguished name is valid.

    Raises:
        McpError: INVALID_PARAMS if the DN is not valid.
    """
    if not is_valid_dn(dn, min_length, max_length):
        logger.debug(f"Invalid DN ({field}): {dn}.")
        raise invalid_params_error("Invalid DN.", {field: dn})
    return ValidatedInput(
        InputKind.DISTINGUISHED_NAME, field, dn, min_length, max_length, "x500-name"
    )


def is_valid_name(value: Optional[str], min_length: int, max_length: int) -> bool:
    """
    Returns True if the given string only contains characters allowed for
    names (ASCII letters, digits, underscore, minus, @ and .) and the length is
    in the given range.
    """
    if value is None or not isinstance(value, str):
        return False
    if not _in_range(value, min_length, max_length):
        return False
    return NAME_PATTERN.fullmatch(value) is not None


def assert_valid_name(
    field: str, value: Optional[str], min_length: int, max_length: int
) -> ValidatedInput:
    """
    Asserts that the provided name is valid for the given field.

    Raises:
        McpError: INVALID_PARAMS if the name is not valid.
    """
    if not is_valid_name(value, min_length, max_length):
        logger.debug(f"Invalid name for field '{field}': '{value}'.")
        raise invalid_params_error(f"Invalid name ({field}).", {field: value})
    return ValidatedInput(
        InputKind.SHORT_NAME, field, value, min_length, max_length, NAME_PATTERN.pattern
    )


def is_valid_email(value: Optional[str], min_length: int, max_length: int) -> bool:
    """Returns True if the given string is a valid e-mail address within the range."""
    if value is None or not isinstance(value, str):
        return False
    if not _in_range(value, min_length, max_length):
        return False
    return EMAIL_PATTERN.fullmatch(value) is not None


def assert_valid_email(
    value: Optional[str], min_length: int, max_length: int, field: str = "email"
) -> ValidatedInput:
    """
    Asserts that the provided e-mail address is valid.

    Raises:
        McpError: INVALID_PARAMS if the e-mail address is not valid.
    """
    if not is_valid_email(value, min_length, max_length):
        logger.debug(f"Invalid e-mail: {value}.")
        raise invalid_params_error("Invalid e-mail.", {field: value})
    return ValidatedInput(
        InputKind.EMAIL_ADDRESS,
        field,
        value,
        min_length,
        max_length,
        EMAIL_PATTERN.pattern,
    )


def has_allowed_characters(value: str, allowed_characters: str) -> bool:
    """Verifies that every character of the value is one of the allowed characters."""
    allowed = set(allowed_characters)
    for char in value:
        if char not in allowed:
            return False
    return True


def is_valid_password(
    value: Optional[str], min_length: int, max_length: int, allowed_characters: str
) -> bool:
    """
    Validates whether a given password meets these criteria:

    1. The length of the password is within the specified range.
    2. The password only contains characters of the configured alphabet.

    Args:
        value: The password to validate.
        min_length: The minimum required length.
        max_length: The maximum allowed length.
        allowed_characters: The allowed characters as one string.

    Returns:
        True if the password meets all criteria, False otherwise.
    """
    if value is None or not isinstance(value, str):
        return False
    if not _in_range(value, min_length, max_length):
        logger.warning(f"Password length out of range: {len(value)}.")
        return False
    if not has_allowed_characters(value, allowed_characters):
        logger.warning("Password contains characters outside the allowed set.")
        return False
    return True


def assert_valid_password(
    value: Optional[str],
    min_length: int,
    max_length: int,
    allowed_characters: str,
    field: str = "password",
) -> ValidatedInput:
    """
    Asserts that the provided password is valid.

    Raises:
        McpError: INVALID_PARAMS if the password is not valid.
    """
    if not is_valid_password(value, min_length, max_length, allowed_characters):
        raise invalid_params_error("Invalid password.", {field: value})
    return ValidatedInput(
        InputKind.PASSWORD, field, value, min_length, max_length, "allowed-characters"
    )


def is_valid_serial_number_hex(value: Optional[str], length: int) -> bool:
    """
    Checks if the provided string is a hexadecimal number of exactly the
    given length (no 0x prefix).
    """
    if value is None or not isinstance(value, str) or len(value) != length:
        return False
    return SERIAL_NUMBER_HEX_PATTERN.fullmatch(value) is not None


def assert_valid_serial_number_hex(
    value: Optional[str], length: int, field: str = "serial_number"
) -> ValidatedInput:
    """
    Asserts that the provided string is a valid serial number in hex format.

    Raises:
        McpError: INVALID_PARAMS if the serial number is not valid.
    """
    if not is_valid_serial_number_hex(value, length):
        logger.debug(f"Invalid serial number hex: {value}.")
        raise invalid_params_error("Invalid serial number.", {field: value})
    return ValidatedInput(
        InputKind.SERIAL_NUMBER_HEX,
        field,
        value,
        length,
        length,
        SERIAL_NUMBER_HEX_PATTERN.pattern,
    )


def is_valid_revocation_reason(value: Optional[str]) -> bool:
    return value is not None and value in REVOCATION_REASONS


def assert_valid_revocation_reason(
    value: Optional[str], field: str = "revocation_reason"
) -> ValidatedInput:
    """
    Asserts that the provided revocation reason is one of REVOCATION_REASONS.

    Raises:
        McpError: INVALID_PARAMS if the reason is missing or unknown.
    """
    if not is_valid_revocation_reason(value):
        logger.debug(f"Invalid revocation reason: {value}.")
        raise invalid_params_error("Invalid revocation reason.", {field: value})
    return ValidatedInput(InputKind.REVOCATION_REASON, field, value, rule="enum")


def is_valid_pem_format(pem: Optional[str]) -> bool:
    """
    Validates whether a string is in PEM format (RFC 7468).

    Literal "\\n" escape sequences are replaced with real newlines first, so
    PEM text passed through JSON without proper escaping is accepted. The BEGIN
    and END labels must be equal and the payload must be valid base64.
    """
    if pem is None or not isinstance(pem, str):
        return False

    normalized = pem.replace("\\n", "\n").strip()
    begin = PEM_BEGIN_PATTERN.match(normalized)
    if not begin:
        return False

    end_boundary = f"-----END {begin.group(1)}-----"
    body_end = len(normalized) - len(end_boundary)
    if body_end < begin.end() or not normalized.endswith(end_boundary):
        return False
    body = normalized[begin.end() : body_end]
    if not PEM_BODY_PATTERN.fullmatch(body):
        return False

    # Extract the base64 payload and strip whitespace
    payload = re.sub(r"\s", "", body)
    if not payload:
        return False
    try:
        base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        return False
    return True


def is_valid_pem(pem: Optional[str], min_length: int, max_length: int) -> bool:
    """
    Validates whether a given string is a properly formatted PEM string whose
    length lies within the given range.
    """
    if pem is None or not isinstance(pem, str):
        return False
    if not _in_range(pem, min_length, max_length):
        return False
    return is_valid_pem_format(pem)


def assert_valid_pem(
    field: str, pem: Optional[str], min_length: int, max_length: int
) -> ValidatedInput:
    """
    Asserts that the provided PEM string is valid.

    Raises:
        McpError: INVALID_PARAMS if the PEM string is not valid.
    """
    if not is_valid_pem(pem, min_length, max_length):
        logger.debug(f"Invalid PEM format ({field}): {pem}.")
        raise invalid_params_error(f"Invalid PEM format ({field}).", {field: pem})
    return ValidatedInput(
        InputKind.PEM_BLOB, field, pem, min_length, max_length, "rfc7468"
    )
