"""
Local PKI tools that do not need the CA backend.
"""

import logging

from ..config import ValidationSettings
from ..errors import invalid_params_error
from ..pem import ParseError, parse_certificate
from ..validation import assert_valid_pem

logger = logging.getLogger(__name__)


class PkiTools:
    """Handlers for tools working on caller-supplied PKI objects."""

    def __init__(self, validation: ValidationSettings):
        self.validation = validation

    async def parse_certificate(self, certificate: str) -> str:
        """
        Parses a PEM formatted X.509 certificate into a readable summary.

        Raises:
            McpError: INVALID_PARAMS if the text is not valid PEM or does not
                hold a well-formed certificate.
        """
        assert_valid_pem(
            "certificate",
            certificate,
            self.validation.pem_min_length,
            self.validation.pem_max_length,
        )
        logger.debug(f"Parse PEM certificate: {certificate}")

        try:
            result = parse_certificate(certificate)
        except ParseError:
            raise invalid_params_error(
                "Failed to parse PEM certificate.", {"certificate": certificate}
            )

        logger.debug(f"Parsed certificate: {result}")
        return result
