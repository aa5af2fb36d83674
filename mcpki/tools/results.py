"""
Result types returned by the tool handlers.

Each result either carries the success fields of its operation or, on
failure, only a sanitized message with all success fields left as None.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

NULL_CRL = "null"


@dataclass
class AvailableCasResult:
    """CAs known to the backend."""

    certificate_authorities: List[Dict[str, Any]] = field(default_factory=list)
    error_message: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "AvailableCasResult":
        return cls(
            certificate_authorities=payload.get("certificate_authorities") or [],
            error_message=payload.get("error_message"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CaCertificateResult:
    """The PEM encoded certificate chain of a CA."""

    ca_chain: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def successful(self) -> bool:
        return self.ca_chain is not None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LatestCrlResult:
    """
    The latest CRL of a CA in PEM format. A CRL of "null" means the backend
    had no usable CRL.
    """

    crl: str = NULL_CRL
    response_format: str = "PEM"

    @property
    def has_crl(self) -> bool:
        return self.crl != NULL_CRL

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class EnrollmentResult:
    """A certificate issued for a CSR."""

    certificate: Optional[str] = None
    serial_number: Optional[str] = None
    response_format: Optional[str] = None
    error_message: Optional[str] = None

    @classmethod
    def failure(cls, message: str) -> "EnrollmentResult":
        return cls(error_message=message)

    @property
    def successful(self) -> bool:
        return self.certificate is not None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RevocationResult:
    """Outcome of a revocation request."""

    revoked: bool
    issuer_dn: Optional[str] = None
    serial_number: Optional[str] = None
    revocation_date: Optional[str] = None
    revocation_reason: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "RevocationResult":
        return cls(
            revoked=bool(payload.get("revoked", False)),
            issuer_dn=payload.get("issuer_dn"),
            serial_number=payload.get("serial_number"),
            revocation_date=payload.get("revocation_date"),
            revocation_reason=payload.get("revocation_reason"),
            message=payload.get("message"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
