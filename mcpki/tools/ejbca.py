"""
Tool handlers for the EJBCA-style CA REST backend.

Every handler validates its input before any network access, calls the
backend through the shared CAClient and shapes the response. Whether a
backend failure is turned into an "unsuccessful" result or propagated to the
caller is decided per tool:

    create_crl                          propagates
    get_available_cas                   AvailableCasResult with error_message
    get_ca_certificate                  CaCertificateResult with error_message
    get_certificate_profile             sanitized error text
    get_certificates_about_to_expire    propagates
    get_count_certificates              propagates
    get_latest_crl                      propagates
    enroll_certificate_with_csr         EnrollmentResult with error_message
    revoke_certificate                  generic RevocationResult
"""

import json
import logging
from typing import Any, Dict
from urllib.parse import quote

from ..ca_client import CAClient, CAClientError
from ..config import ToolSettings, ValidationSettings
from ..errors import describe_exception
from ..pem import to_pem_certificate, to_pem_crl
from ..sanitizer import sanitize
from ..validation import (
    assert_valid_dn,
    assert_valid_email,
    assert_valid_name,
    assert_valid_password,
    assert_valid_pem,
    assert_valid_revocation_reason,
    assert_valid_serial_number_hex,
    ValidatedInput,
    is_valid_pem,
)
from .results import (
    NULL_CRL,
    AvailableCasResult,
    CaCertificateResult,
    EnrollmentResult,
    LatestCrlResult,
    RevocationResult,
)

logger = logging.getLogger(__name__)

CA_CHAIN_NOT_FOUND = "CA certificate chain was not found."
INVALID_CERTIFICATE_PEM = "Certificate is invalid PEM format."
REVOCATION_FAILED = (
    "Certificate could not be revoked. Either the certificate does not exist, "
    "the password is wrong or the revocation reason is invalid."
)


def _path(value: str) -> str:
    """Percent-encodes a value used as a single URL path segment."""
    return quote(value, safe="=,")


def _flag(value: bool) -> str:
    return "true" if value else "false"


class EjbcaTools:
    """
    Handlers for the CA backend tools. Instances hold only read-only
    configuration and the shared client, so one instance serves all
    concurrent calls.
    """

    def __init__(
        self,
        ca_client: CAClient,
        validation: ValidationSettings,
        tools: ToolSettings,
    ):
        self.ca_client = ca_client
        self.base_url = ca_client.base_url
        self.validation = validation
        self.expire_max_items = tools.expire_max_items

    def _assert_dn(self, dn: str, field: str) -> ValidatedInput:
        return assert_valid_dn(
            dn, self.validation.dn_min_length, self.validation.dn_max_length, field
        )

    def _assert_name(self, field: str, name: str) -> ValidatedInput:
        return assert_valid_name(
            field, name, self.validation.name_min_length, self.validation.name_max_length
        )

    def _assert_password(self, password: str) -> ValidatedInput:
        return assert_valid_password(
            password,
            self.validation.password_min_length,
            self.validation.password_max_length,
            self.validation.password_allowed_characters,
        )

    async def create_crl(self, issuer_dn: str) -> Dict[str, Any]:
        """
        Creates a new CRL for the given issuing CA.

        Returns:
            The backend response unchanged (issuer_dn, latest_crl_version,
            all_success, error_code, error_message).
        """
        issuer = self._assert_dn(issuer_dn, "issuer_dn")

        url = f"{self.base_url}/v1/ca/{_path(issuer.value)}/createcrl?deltacrl=false"
        logger.debug(f"Requested URL: {url}")

        response = await self.ca_client.post(url, json={})
        return response.json()

    async def get_available_cas(self, external: bool) -> AvailableCasResult:
        """Lists the CAs of the backend, optionally including external CAs."""
        url = f"{self.base_url}/v1/ca?includeExternal={_flag(external)}"
        logger.debug(f"Requested URL: {url}")

        try:
            response = await self.ca_client.get(url)
            result = AvailableCasResult.from_payload(response.json())
        except (CAClientError, ValueError) as e:
            # Connection refused and others land here, so sanitize the message.
            return AvailableCasResult(error_message=sanitize(str(e), self.base_url))

        for ca in result.certificate_authorities:
            logger.debug(f"CA: {ca.get('name')}, expires at {ca.get('expiration_date')}.")
        return result

    async def get_ca_certificate(self, subject_dn: str) -> CaCertificateResult:
        """
        Downloads the PEM encoded certificate chain of a CA.

        The backend answers with the chain as plain text on success and with a
        JSON object describing the error otherwise, both with a success status.
        A body that parses as JSON is therefore treated as "not found".
        """
        subject = self._assert_dn(subject_dn, "subject_dn")

        url = f"{self.base_url}/v1/ca/{_path(subject.value)}/certificate/download"
        logger.debug(f"Requested URL: {url}")

        try:
            response = await self.ca_client.get(url)
        except CAClientError as e:
            return CaCertificateResult(error_message=sanitize(str(e), self.base_url))

        payload = response.text
        try:
            error = json.loads(payload)
        except ValueError:
            logger.debug(f"Got CA certificate chain for {subject}.")
            return CaCertificateResult(ca_chain=payload)

        logger.warning(f"Error: {json.dumps(error)}")
        return CaCertificateResult(error_code="400", error_message=CA_CHAIN_NOT_FOUND)

    async def get_certificate_profile(self, name: str) -> str:
        """Returns the backend's JSON description of a certificate profile."""
        profile = self._assert_name("certificate_profile_name", name)

        url = f"{self.base_url}/v2/certificate/profile/{_path(profile.value)}"
        logger.debug(f"Requested URL: {url}")

        try:
            response = await self.ca_client.get(url)
        except CAClientError as e:
            # Connection refused and others land here, so sanitize the message.
            return sanitize(str(e), self.base_url)
        return response.text

    async def get_certificates_about_to_expire(
        self, days: int, offset: int, max: int
    ) -> str:
        """
        Lists certificates expiring within the given number of days.

        Negative days and offsets are raised to 0 and max is capped at the
        configured maximum page size.
        """
        days = 0 if days < 0 else days
        offset = 0 if offset < 0 else offset
        max = self.expire_max_items if max > self.expire_max_items else max

        url = (
            f"{self.base_url}/v1/certificate/expire?days={days}&offset={offset}"
            f"&maxNumberOfResults={max}"
        )
        logger.debug(f"Requested URL: {url}")

        response = await self.ca_client.get(url)
        return response.text

    async def get_count_certificates(self, active: bool) -> str:
        """Counts the certificates known to the backend."""
        url = f"{self.base_url}/v2/certificate/count?isActive={_flag(active)}"
        logger.debug(f"Call count certificates: {url}")

        response = await self.ca_client.get(url)
        return response.text

    async def get_latest_crl(self, issuer_dn: str) -> LatestCrlResult:
        """
        Fetches the latest full CRL of a CA and converts it to PEM.

        Returns a result with crl "null" if the backend has no CRL or the
        converted CRL is not valid PEM.
        """
        issuer = self._assert_dn(issuer_dn, "issuer_dn")

        url = (
            f"{self.base_url}/v1/ca/{_path(issuer.value)}/getLatestCrl"
            "?deltaCrl=false&crlPartitionIndex=0"
        )
        logger.debug(f"Requested URL: {url}")

        response = await self.ca_client.get(url)
        payload = response.json()

        crl = payload.get("crl") if isinstance(payload, dict) else None
        if isinstance(crl, str) and crl.lower() != NULL_CRL:
            formatted_crl = to_pem_crl(crl)
            if is_valid_pem(
                formatted_crl,
                self.validation.pem_min_length,
                self.validation.pem_max_length,
            ):
                return LatestCrlResult(crl=formatted_crl)
            logger.warning(f"CRL of {issuer} is not valid PEM.")
        return LatestCrlResult()

    async def enroll_certificate_with_csr(
        self,
        csr: str,
        certificate_profile_name: str,
        end_entity_profile_name: str,
        name_of_ca: str,
        username: str,
        password: str,
        email: str,
    ) -> EnrollmentResult:
        """Enrolls a certificate for the given PKCS#10 certificate signing request."""
        secret = self._assert_password(password)
        certificate_profile = self._assert_name(
            "certificate_profile_name", certificate_profile_name
        )
        end_entity_profile = self._assert_name(
            "end_entity_profile_name", end_entity_profile_name
        )
        user = self._assert_name("username", username)
        address = assert_valid_email(
            email, self.validation.email_min_length, self.validation.email_max_length
        )
        request_pem = assert_valid_pem(
            "csr", csr, self.validation.pem_min_length, self.validation.pem_max_length
        )

        url = f"{self.base_url}/v1/certificate/pkcs10enroll"
        logger.debug(f"Requested URL: {url}")
        logger.debug(f"CSR: {request_pem}")

        # Field names (including "reponse_format") follow the backend contract.
        request = {
            "certificate_request": request_pem.value,
            "certificate_profile_name": certificate_profile.value,
            "end_entity_profile_name": end_entity_profile.value,
            "certificate_authority_name": name_of_ca,
            "username": user.value,
            "password": secret.value,
            "include_chain": "false",
            "email": address.value,
            "reponse_format": "PEM",
        }

        try:
            response = await self.ca_client.post(url, json=request)
            payload = response.json()
        except (CAClientError, ValueError) as e:
            # Connection refused, unknown profiles and others land here.
            return EnrollmentResult.failure(
                sanitize(describe_exception(e), self.base_url)
            )

        certificate = payload.get("certificate") if isinstance(payload, dict) else None
        if not isinstance(certificate, str):
            return EnrollmentResult.failure(INVALID_CERTIFICATE_PEM)

        pem = to_pem_certificate(certificate)
        logger.debug(f"Generated certificate: \n{pem}")
        if not is_valid_pem(
            pem, self.validation.pem_min_length, self.validation.pem_max_length
        ):
            return EnrollmentResult.failure(INVALID_CERTIFICATE_PEM)

        return EnrollmentResult(
            certificate=pem,
            serial_number=payload.get("serial_number"),
            response_format="PEM",
            error_message=payload.get("error_message"),
        )

    async def revoke_certificate(
        self,
        issuer_dn: str,
        serial_number: str,
        password: str,
        revocation_reason: str,
    ) -> RevocationResult:
        """
        Revokes a certificate.

        A failed call always yields the same generic message so that callers
        cannot tell whether a certificate exists.
        """
        serial = assert_valid_serial_number_hex(
            serial_number, self.validation.serial_number_hex_length
        )
        issuer = self._assert_dn(issuer_dn, "issuer_dn")
        secret = self._assert_password(password)
        reason = assert_valid_revocation_reason(revocation_reason)

        url = (
            f"{self.base_url}/v1/certificate/{_path(issuer.value)}/{serial.value}"
            f"/revoke?reason={reason.value}"
        )
        logger.debug(f"Requested URL: {url}")

        try:
            response = await self.ca_client.post(url, json={"password": secret.value})
            return RevocationResult.from_payload(response.json())
        except (CAClientError, ValueError) as e:
            logger.debug(
                f"Could not revoke certificate with SN {serial} issued by "
                f"{issuer} with revocation reason {reason}: "
                f"{sanitize(str(e), self.base_url)}"
            )
            return RevocationResult(
                revoked=False,
                issuer_dn=issuer.value,
                serial_number=serial.value,
                revocation_date=None,
                revocation_reason=reason.value,
                message=REVOCATION_FAILED,
            )
