"""
Tool handlers exposed through the MCP server.
"""

from .ejbca import EjbcaTools
from .pki import PkiTools
from .results import (
    AvailableCasResult,
    CaCertificateResult,
    EnrollmentResult,
    LatestCrlResult,
    RevocationResult,
)

__all__ = [
    "EjbcaTools",
    "PkiTools",
    "AvailableCasResult",
    "CaCertificateResult",
    "EnrollmentResult",
    "LatestCrlResult",
    "RevocationResult",
]
