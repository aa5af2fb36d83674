"""
Tests for the CA backend tool handlers.
"""

import httpx
import pytest
from mcp.shared.exceptions import McpError
from mcp.types import INVALID_PARAMS

from mcpki.ca_client import BackendError, BackendUnavailable
from mcpki.sanitizer import PLACEHOLDER_URL
from mcpki.tools.ejbca import (
    CA_CHAIN_NOT_FOUND,
    INVALID_CERTIFICATE_PEM,
    REVOCATION_FAILED,
)
from mcpki.validation import InputKind
from mcpki.tools.results import (
    AvailableCasResult,
    CaCertificateResult,
    EnrollmentResult,
    LatestCrlResult,
    RevocationResult,
)
from tests.conftest import BASE_URL
from tests.pki_samples import (
    BASE64_CERTIFICATE,
    BASE64_CRL,
    CSR_WITH_ESCAPES,
    P256_SUB_CA,
    PEM_CERTIFICATE,
    PEM_CRL,
)

ISSUER_DN = "CN=mcpki-rsa-sub-ca,O=mcpki.org"
SERIAL_NUMBER = "6AFAB98508ECD8A528C21B333A466A5F8756DB76"
PASSWORD = "foo123-bar"


def unreachable(method, path):
    return BackendUnavailable(
        f'I/O error on {method} request for "{BASE_URL}{path}": Connection refused'
    )


def enroll_args(**overrides):
    args = {
        "csr": CSR_WITH_ESCAPES,
        "certificate_profile_name": "tlsServerProfile",
        "end_entity_profile_name": "tlsServerEndEntity",
        "name_of_ca": "mcpki-rsa-sub-ca",
        "username": "example1.org",
        "password": PASSWORD,
        "email": "admin@example1.org",
    }
    args.update(overrides)
    return args


class TestValidatedArguments:
    """Test the argument checks shared by the handlers."""

    def test_checks_return_validated_values(self, ejbca_tools):
        issuer = ejbca_tools._assert_dn(ISSUER_DN, "issuer_dn")
        profile = ejbca_tools._assert_name("certificate_profile_name", "tlsServerProfile")
        secret = ejbca_tools._assert_password(PASSWORD)

        assert (issuer.kind, issuer.field, issuer.value) == (
            InputKind.DISTINGUISHED_NAME,
            "issuer_dn",
            ISSUER_DN,
        )
        assert profile.value == "tlsServerProfile"
        assert secret.kind is InputKind.PASSWORD
        assert PASSWORD not in repr(secret)


class TestCreateCrl:
    """Test the create_crl handler."""

    @pytest.mark.asyncio
    async def test_returns_backend_response(self, ejbca_tools, mock_ca_client):
        payload = {
            "issuer_dn": ISSUER_DN,
            "latest_crl_version": 27,
            "all_success": True,
        }
        mock_ca_client.post.return_value = httpx.Response(200, json=payload)

        result = await ejbca_tools.create_crl(ISSUER_DN)

        assert result == payload
        mock_ca_client.post.assert_awaited_once_with(
            f"{BASE_URL}/v1/ca/{ISSUER_DN}/createcrl?deltacrl=false", json={}
        )

    @pytest.mark.asyncio
    async def test_dn_with_spaces_is_encoded(self, ejbca_tools, mock_ca_client):
        mock_ca_client.post.return_value = httpx.Response(200, json={})

        await ejbca_tools.create_crl("CN=Management CA,O=mcpki.org")

        url = mock_ca_client.post.call_args.args[0]
        assert "/v1/ca/CN=Management%20CA,O=mcpki.org/createcrl" in url

    @pytest.mark.asyncio
    async def test_invalid_dn(self, ejbca_tools, mock_ca_client):
        with pytest.raises(McpError) as exc_info:
            await ejbca_tools.create_crl("CN=x;rm")

        assert exc_info.value.error.code == INVALID_PARAMS
        assert exc_info.value.error.data == {"issuer_dn": "CN=x;rm"}
        mock_ca_client.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_backend_failure_propagates(self, ejbca_tools, mock_ca_client):
        mock_ca_client.post.side_effect = unreachable("POST", "/v1/ca")

        with pytest.raises(BackendUnavailable):
            await ejbca_tools.create_crl(ISSUER_DN)


class TestGetAvailableCas:
    """Test the get_available_cas handler."""

    @pytest.mark.asyncio
    async def test_lists_cas(self, ejbca_tools, mock_ca_client):
        cas = [
            {
                "id": 1,
                "name": "mcpki-rsa-sub-ca",
                "subject_dn": ISSUER_DN,
                "issuer_dn": "CN=mcpki-rsa-root-ca,O=mcpki.org",
                "expiration_date": "2035-07-29T17:00:00Z",
                "external": False,
            }
        ]
        mock_ca_client.get.return_value = httpx.Response(
            200, json={"certificate_authorities": cas}
        )

        result = await ejbca_tools.get_available_cas(False)

        assert result == AvailableCasResult(certificate_authorities=cas)
        mock_ca_client.get.assert_awaited_once_with(f"{BASE_URL}/v1/ca?includeExternal=false")

    @pytest.mark.asyncio
    async def test_include_external(self, ejbca_tools, mock_ca_client):
        mock_ca_client.get.return_value = httpx.Response(200, json={})

        result = await ejbca_tools.get_available_cas(True)

        assert result.certificate_authorities == []
        mock_ca_client.get.assert_awaited_once_with(f"{BASE_URL}/v1/ca?includeExternal=true")

    @pytest.mark.asyncio
    async def test_unreachable_backend(self, ejbca_tools, mock_ca_client):
        mock_ca_client.get.side_effect = unreachable("GET", "/v1/ca?includeExternal=false")

        result = await ejbca_tools.get_available_cas(False)

        assert result.certificate_authorities == []
        assert BASE_URL not in result.error_message
        assert PLACEHOLDER_URL in result.error_message


class TestGetCaCertificate:
    """Test the get_ca_certificate handler."""

    @pytest.mark.asyncio
    async def test_returns_chain(self, ejbca_tools, mock_ca_client):
        mock_ca_client.get.return_value = httpx.Response(200, text=P256_SUB_CA)

        result = await ejbca_tools.get_ca_certificate(ISSUER_DN)

        assert result == CaCertificateResult(ca_chain=P256_SUB_CA)
        assert result.successful is True
        mock_ca_client.get.assert_awaited_once_with(
            f"{BASE_URL}/v1/ca/{ISSUER_DN}/certificate/download"
        )

    @pytest.mark.asyncio
    async def test_json_body_means_not_found(self, ejbca_tools, mock_ca_client):
        mock_ca_client.get.return_value = httpx.Response(
            200, json={"error_code": 404, "error_message": "CA not found"}
        )

        result = await ejbca_tools.get_ca_certificate("CN=unknown-ca")

        assert result.ca_chain is None
        assert result.error_code == "400"
        assert result.error_message == CA_CHAIN_NOT_FOUND
        assert result.successful is False

    @pytest.mark.asyncio
    async def test_unreachable_backend(self, ejbca_tools, mock_ca_client):
        mock_ca_client.get.side_effect = unreachable("GET", "/v1/ca/x/certificate/download")

        result = await ejbca_tools.get_ca_certificate(ISSUER_DN)

        assert result.ca_chain is None
        assert BASE_URL not in result.error_message

    @pytest.mark.asyncio
    async def test_invalid_dn(self, ejbca_tools, mock_ca_client):
        with pytest.raises(McpError) as exc_info:
            await ejbca_tools.get_ca_certificate("")

        assert exc_info.value.error.data == {"subject_dn": ""}
        mock_ca_client.get.assert_not_called()


class TestGetCertificateProfile:
    """Test the get_certificate_profile handler."""

    @pytest.mark.asyncio
    async def test_returns_profile_text(self, ejbca_tools, mock_ca_client):
        body = '{"certificate_profile_id":1,"available_key_algorithms":["RSA"]}'
        mock_ca_client.get.return_value = httpx.Response(200, text=body)

        result = await ejbca_tools.get_certificate_profile("tlsServerProfile")

        assert result == body
        mock_ca_client.get.assert_awaited_once_with(
            f"{BASE_URL}/v2/certificate/profile/tlsServerProfile"
        )

    @pytest.mark.asyncio
    async def test_invalid_name(self, ejbca_tools, mock_ca_client):
        with pytest.raises(McpError) as exc_info:
            await ejbca_tools.get_certificate_profile("../admin")

        assert exc_info.value.error.message == "Invalid name (certificate_profile_name)."
        mock_ca_client.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_backend_error_is_returned_sanitized(self, ejbca_tools, mock_ca_client):
        mock_ca_client.get.side_effect = BackendError(
            f"Client error '404 Not Found' for url '{BASE_URL}/v2/certificate/profile/x'",
            404,
        )

        result = await ejbca_tools.get_certificate_profile("x")

        assert BASE_URL not in result
        assert "404 Not Found" in result


class TestGetCertificatesAboutToExpire:
    """Test the get_certificates_about_to_expire handler."""

    @pytest.mark.asyncio
    async def test_passes_arguments(self, ejbca_tools, mock_ca_client):
        mock_ca_client.get.return_value = httpx.Response(200, text='{"certificates_rest_response":{}}')

        result = await ejbca_tools.get_certificates_about_to_expire(30, 10, 20)

        assert result == '{"certificates_rest_response":{}}'
        mock_ca_client.get.assert_awaited_once_with(
            f"{BASE_URL}/v1/certificate/expire?days=30&offset=10&maxNumberOfResults=20"
        )

    @pytest.mark.asyncio
    async def test_clamps_arguments(self, ejbca_tools, mock_ca_client):
        mock_ca_client.get.return_value = httpx.Response(200, text="{}")

        await ejbca_tools.get_certificates_about_to_expire(-5, -1, 1000)

        mock_ca_client.get.assert_awaited_once_with(
            f"{BASE_URL}/v1/certificate/expire?days=0&offset=0&maxNumberOfResults=100"
        )

    @pytest.mark.asyncio
    async def test_backend_failure_propagates(self, ejbca_tools, mock_ca_client):
        mock_ca_client.get.side_effect = unreachable("GET", "/v1/certificate/expire")

        with pytest.raises(BackendUnavailable):
            await ejbca_tools.get_certificates_about_to_expire(30, 0, 10)


class TestGetCountCertificates:
    """Test the get_count_certificates handler."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("active,flag", [(True, "true"), (False, "false")])
    async def test_count(self, ejbca_tools, mock_ca_client, active, flag):
        mock_ca_client.get.return_value = httpx.Response(200, text='{"count":42}')

        result = await ejbca_tools.get_count_certificates(active)

        assert result == '{"count":42}'
        mock_ca_client.get.assert_awaited_once_with(
            f"{BASE_URL}/v2/certificate/count?isActive={flag}"
        )

    @pytest.mark.asyncio
    async def test_backend_failure_propagates(self, ejbca_tools, mock_ca_client):
        mock_ca_client.get.side_effect = unreachable("GET", "/v2/certificate/count")

        with pytest.raises(BackendUnavailable):
            await ejbca_tools.get_count_certificates(True)


class TestGetLatestCrl:
    """Test the get_latest_crl handler."""

    @pytest.mark.asyncio
    async def test_converts_crl_to_pem(self, ejbca_tools, mock_ca_client):
        mock_ca_client.get.return_value = httpx.Response(
            200, json={"crl": BASE64_CRL, "response_format": "DER"}
        )

        result = await ejbca_tools.get_latest_crl(ISSUER_DN)

        assert result == LatestCrlResult(crl=PEM_CRL, response_format="PEM")
        assert result.has_crl is True
        mock_ca_client.get.assert_awaited_once_with(
            f"{BASE_URL}/v1/ca/{ISSUER_DN}/getLatestCrl"
            "?deltaCrl=false&crlPartitionIndex=0"
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [{"crl": None}, {"crl": "null"}, {"crl": "NULL"}, {}])
    async def test_no_crl(self, ejbca_tools, mock_ca_client, payload):
        mock_ca_client.get.return_value = httpx.Response(200, json=payload)

        result = await ejbca_tools.get_latest_crl(ISSUER_DN)

        assert result.to_dict() == {"crl": "null", "response_format": "PEM"}
        assert result.has_crl is False

    @pytest.mark.asyncio
    async def test_invalid_crl_payload(self, ejbca_tools, mock_ca_client):
        mock_ca_client.get.return_value = httpx.Response(200, json={"crl": "not*base64"})

        result = await ejbca_tools.get_latest_crl(ISSUER_DN)

        assert result.crl == "null"

    @pytest.mark.asyncio
    async def test_backend_failure_propagates(self, ejbca_tools, mock_ca_client):
        mock_ca_client.get.side_effect = unreachable("GET", "/v1/ca/x/getLatestCrl")

        with pytest.raises(BackendUnavailable):
            await ejbca_tools.get_latest_crl(ISSUER_DN)


class TestEnrollCertificateWithCsr:
    """Test the enroll_certificate_with_csr handler."""

    @pytest.mark.asyncio
    async def test_enrolls_certificate(self, ejbca_tools, mock_ca_client):
        mock_ca_client.post.return_value = httpx.Response(
            201,
            json={
                "certificate": BASE64_CERTIFICATE,
                "serial_number": SERIAL_NUMBER,
                "response_format": "DER",
            },
        )

        result = await ejbca_tools.enroll_certificate_with_csr(**enroll_args())

        assert result == EnrollmentResult(
            certificate=PEM_CERTIFICATE,
            serial_number=SERIAL_NUMBER,
            response_format="PEM",
            error_message=None,
        )
        assert result.successful is True

    @pytest.mark.asyncio
    async def test_request_body(self, ejbca_tools, mock_ca_client):
        mock_ca_client.post.return_value = httpx.Response(
            201, json={"certificate": BASE64_CERTIFICATE}
        )

        await ejbca_tools.enroll_certificate_with_csr(**enroll_args())

        mock_ca_client.post.assert_awaited_once_with(
            f"{BASE_URL}/v1/certificate/pkcs10enroll",
            json={
                "certificate_request": CSR_WITH_ESCAPES,
                "certificate_profile_name": "tlsServerProfile",
                "end_entity_profile_name": "tlsServerEndEntity",
                "certificate_authority_name": "mcpki-rsa-sub-ca",
                "username": "example1.org",
                "password": PASSWORD,
                "include_chain": "false",
                "email": "admin@example1.org",
                "reponse_format": "PEM",
            },
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "overrides,message",
        [
            ({"password": "x"}, "Invalid password."),
            ({"certificate_profile_name": "bad profile"}, "Invalid name (certificate_profile_name)."),
            ({"end_entity_profile_name": ""}, "Invalid name (end_entity_profile_name)."),
            ({"username": "user name"}, "Invalid name (username)."),
            ({"email": "not-an-email"}, "Invalid e-mail."),
            ({"csr": "not a csr"}, "Invalid PEM format (csr)."),
        ],
    )
    async def test_invalid_input_never_reaches_backend(
        self, ejbca_tools, mock_ca_client, overrides, message
    ):
        with pytest.raises(McpError) as exc_info:
            await ejbca_tools.enroll_certificate_with_csr(**enroll_args(**overrides))

        assert exc_info.value.error.code == INVALID_PARAMS
        assert exc_info.value.error.message == message
        mock_ca_client.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_password_is_checked_first(self, ejbca_tools, mock_ca_client):
        with pytest.raises(McpError) as exc_info:
            await ejbca_tools.enroll_certificate_with_csr(
                **enroll_args(password="x", username="user name", csr="bad")
            )

        assert exc_info.value.error.message == "Invalid password."

    @pytest.mark.asyncio
    async def test_backend_rejection(self, ejbca_tools, mock_ca_client):
        mock_ca_client.post.side_effect = BackendError(
            f"Client error '400 Bad Request' for url '{BASE_URL}/v1/certificate/pkcs10enroll'"
            ' - {"error_code":400,"error_message":"Wrong username or password"}',
            400,
        )

        result = await ejbca_tools.enroll_certificate_with_csr(**enroll_args())

        assert result.certificate is None
        assert result.successful is False
        assert BASE_URL not in result.error_message
        assert "Wrong username or password" in result.error_message

    @pytest.mark.asyncio
    async def test_unreachable_backend(self, ejbca_tools, mock_ca_client):
        mock_ca_client.post.side_effect = unreachable("POST", "/v1/certificate/pkcs10enroll")

        result = await ejbca_tools.enroll_certificate_with_csr(**enroll_args())

        assert result.certificate is None
        assert result.serial_number is None
        assert BASE_URL not in result.error_message

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [{}, {"certificate": None}, {"certificate": "!!!"}])
    async def test_invalid_certificate(self, ejbca_tools, mock_ca_client, payload):
        mock_ca_client.post.return_value = httpx.Response(201, json=payload)

        result = await ejbca_tools.enroll_certificate_with_csr(**enroll_args())

        assert result == EnrollmentResult(error_message=INVALID_CERTIFICATE_PEM)


class TestRevokeCertificate:
    """Test the revoke_certificate handler."""

    @pytest.mark.asyncio
    async def test_revokes(self, ejbca_tools, mock_ca_client):
        mock_ca_client.post.return_value = httpx.Response(
            200,
            json={
                "issuer_dn": ISSUER_DN,
                "serial_number": SERIAL_NUMBER,
                "revocation_reason": "KEY_COMPROMISE",
                "revocation_date": "2025-08-01T13:19:55Z",
                "message": "Successfully revoked",
                "revoked": True,
            },
        )

        result = await ejbca_tools.revoke_certificate(
            ISSUER_DN, SERIAL_NUMBER, PASSWORD, "KEY_COMPROMISE"
        )

        assert result.revoked is True
        assert result.revocation_date == "2025-08-01T13:19:55Z"
        assert result.message == "Successfully revoked"
        mock_ca_client.post.assert_awaited_once_with(
            f"{BASE_URL}/v1/certificate/{ISSUER_DN}/{SERIAL_NUMBER}"
            "/revoke?reason=KEY_COMPROMISE",
            json={"password": PASSWORD},
        )

    @pytest.mark.asyncio
    async def test_unreachable_backend_gives_generic_result(self, ejbca_tools, mock_ca_client):
        mock_ca_client.post.side_effect = unreachable("POST", "/v1/certificate/x/revoke")

        result = await ejbca_tools.revoke_certificate(
            ISSUER_DN, SERIAL_NUMBER, PASSWORD, "KEY_COMPROMISE"
        )

        assert result.to_dict() == {
            "revoked": False,
            "issuer_dn": ISSUER_DN,
            "serial_number": SERIAL_NUMBER,
            "revocation_date": None,
            "revocation_reason": "KEY_COMPROMISE",
            "message": REVOCATION_FAILED,
        }

    @pytest.mark.asyncio
    async def test_backend_rejection_gives_same_result(self, ejbca_tools, mock_ca_client):
        mock_ca_client.post.side_effect = BackendError("Client error '404 Not Found'", 404)

        result = await ejbca_tools.revoke_certificate(
            ISSUER_DN, SERIAL_NUMBER, PASSWORD, "SUPERSEDED"
        )

        assert result == RevocationResult(
            revoked=False,
            issuer_dn=ISSUER_DN,
            serial_number=SERIAL_NUMBER,
            revocation_date=None,
            revocation_reason="SUPERSEDED",
            message=REVOCATION_FAILED,
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "args,message",
        [
            (("CN=ca", "1234", PASSWORD, "UNSPECIFIED"), "Invalid serial number."),
            (("CN=ca;x", SERIAL_NUMBER, PASSWORD, "UNSPECIFIED"), "Invalid DN."),
            (("CN=ca", SERIAL_NUMBER, "x", "UNSPECIFIED"), "Invalid password."),
            (("CN=ca", SERIAL_NUMBER, PASSWORD, "LOST"), "Invalid revocation reason."),
        ],
    )
    async def test_invalid_input_never_reaches_backend(
        self, ejbca_tools, mock_ca_client, args, message
    ):
        with pytest.raises(McpError) as exc_info:
            await ejbca_tools.revoke_certificate(*args)

        assert exc_info.value.error.message == message
        mock_ca_client.post.assert_not_called()
