"""
PEM formatting and parsing.

The CA backend returns certificates and CRLs as bare base64 strings; this
module wraps them into boundary-delimited PEM text and renders PEM encoded
certificates as a human readable summary.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed448, ed25519, rsa

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64


class ParseError(Exception):
    """Raised when PEM text does not contain a well-formed X.509 certificate."""


class PemKind(Enum):
    """PEM labels handled by the gateway."""

    CERTIFICATE = "CERTIFICATE"
    X509_CRL = "X509 CRL"
    CERTIFICATE_REQUEST = "CERTIFICATE REQUEST"


@dataclass(frozen=True)
class PemObject:
    """A base64 payload together with its PEM label."""

    kind: PemKind
    body: str

    @property
    def boundary_start(self) -> str:
        return f"-----BEGIN {self.kind.value}-----\n"

    @property
    def boundary_end(self) -> str:
        return f"-----END {self.kind.value}-----"

    def encode(self) -> str:
        """
        Serializes the object: start boundary, newline terminated lines of 64
        characters, end boundary without a trailing newline.
        """
        return self.boundary_start + wrap(self.body) + self.boundary_end


def wrap(base64_content: str) -> str:
    """
    Splits a base64 string into lines of 64 characters, each terminated by a
    newline. The final line keeps the remaining characters.
    """
    return "".join(
        base64_content[i : i + CHUNK_SIZE] + "\n"
        for i in range(0, len(base64_content), CHUNK_SIZE)
    )


def to_pem_certificate(base64_content: str) -> str:
    """Converts a base64 encoded X.509 certificate to PEM including boundaries."""
    return PemObject(PemKind.CERTIFICATE, base64_content).encode()


def to_pem_crl(base64_content: str) -> str:
    """Converts a base64 encoded CRL to PEM including boundaries."""
    return PemObject(PemKind.X509_CRL, base64_content).encode()


def normalize(pem: str) -> str:
    """Replaces literal "\\n" escape sequences with newlines and trims the text."""
    return pem.replace("\\n", "\n").strip()


def _describe_public_key(certificate: x509.Certificate) -> str:
    public_key = certificate.public_key()
    if isinstance(public_key, rsa.RSAPublicKey):
        return f"RSA ({public_key.key_size} bit)"
    if isinstance(public_key, ec.EllipticCurvePublicKey):
        return f"EC ({public_key.curve.name}, {public_key.key_size} bit)"
    if isinstance(public_key, dsa.DSAPublicKey):
        return f"DSA ({public_key.key_size} bit)"
    if isinstance(public_key, ed25519.Ed25519PublicKey):
        return "Ed25519"
    if isinstance(public_key, ed448.Ed448PublicKey):
        return "Ed448"
    return public_key.__class__.__name__.replace("PublicKey", "")


def _oid_name(oid: x509.ObjectIdentifier) -> str:
    name = getattr(oid, "_name", "Unknown OID")
    if name == "Unknown OID":
        return oid.dotted_string
    return name


def _describe_extensions(certificate: x509.Certificate) -> List[str]:
    lines = []
    for extension in certificate.extensions:
        critical = " (critical)" if extension.critical else ""
        lines.append(f"        {_oid_name(extension.oid)}{critical}:")
        lines.append(f"            {extension.value}")
    return lines


def parse_certificate(pem: str) -> str:
    """
    Parses a PEM formatted X.509 certificate and returns its textual
    representation.

    Args:
        pem: The PEM formatted certificate.

    Returns:
        A multi-line summary with subject, issuer, validity, serial number,
        public key algorithm and extensions.

    Raises:
        ParseError: If the text does not hold a well-formed certificate.
    """
    try:
        certificate = x509.load_pem_x509_certificate(normalize(pem).encode("ascii"))
        lines = [
            "Certificate:",
            f"    Version: {certificate.version.name}",
            f"    Serial Number: {certificate.serial_number:x}",
            f"    Signature Algorithm: {_oid_name(certificate.signature_algorithm_oid)}",
            f"    Issuer: {certificate.issuer.rfc4514_string()}",
            "    Validity:",
            f"        Not Before: {certificate.not_valid_before_utc.isoformat()}",
            f"        Not After: {certificate.not_valid_after_utc.isoformat()}",
            f"    Subject: {certificate.subject.rfc4514_string()}",
            f"    Public Key Algorithm: {_describe_public_key(certificate)}",
        ]
        extension_lines = _describe_extensions(certificate)
        if extension_lines:
            lines.append("    Extensions:")
            lines.extend(extension_lines)
        lines.append(
            f"    SHA-256 Fingerprint: {certificate.fingerprint(hashes.SHA256()).hex()}"
        )
    except (
        ValueError,
        UnicodeError,
        UnsupportedAlgorithm,
        x509.DuplicateExtension,
        x509.InvalidVersion,
        x509.UnsupportedGeneralNameType,
    ) as e:
        logger.info(f"Failed to parse certificate: {e}.")
        raise ParseError(f"Failed to parse certificate: {e}") from e
    return "\n".join(lines)
