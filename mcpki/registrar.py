import logging
from typing import Annotated, Any, Awaitable, Callable, Dict, List, Tuple

from fastmcp import FastMCP
from fastmcp.tools import FunctionTool
from pydantic import Field

from .config import TOOL_NAMES, ToolSettings
from .errors import install_error_channel, translate_errors
from .tools import EjbcaTools, PkiTools

ToolFunction = Callable[..., Awaitable[Any]]


class ToolRegistrar:
    """
    Handles the registration of the PKI tools onto the FastMCP Server instance.

    Each tool is registered only if it is enabled in the configuration. A
    disabled tool is never visible to MCP clients.
    """

    def __init__(
        self,
        ejbca_tools: EjbcaTools,
        pki_tools: PkiTools,
        tool_settings: ToolSettings,
        base_url: str,
    ):
        self.ejbca_tools = ejbca_tools
        self.pki_tools = pki_tools
        self.tool_settings = tool_settings
        self.base_url = base_url
        self.registered_tools: List[str] = []

    def _create_tool_functions(self) -> Dict[str, Tuple[str, ToolFunction]]:
        """
        A factory that creates one function per tool. The signatures declare the
        parameters and their descriptions, from which FastMCP generates the
        input schema. Every call runs inside translate_errors so that no backend
        URL or stack trace reaches the client.
        """
        ejbca = self.ejbca_tools
        pki = self.pki_tools
        base_url = self.base_url

        async def create_crl(
            issuer_dn: Annotated[str, Field(description="The subject DN of the issuing CA.")],
        ) -> Dict[str, Any]:
            with translate_errors(base_url):
                return await ejbca.create_crl(issuer_dn)

        async def get_available_cas(
            external: Annotated[
                bool, Field(description="True if external CAs are returned as well.")
            ] = False,
        ) -> Dict[str, Any]:
            with translate_errors(base_url):
                result = await ejbca.get_available_cas(external)
                return result.to_dict()

        async def get_ca_certificate(
            subject_dn: Annotated[
                str, Field(description="The subject DN of the CA certificate.")
            ],
        ) -> Dict[str, Any]:
            with translate_errors(base_url):
                result = await ejbca.get_ca_certificate(subject_dn)
                return result.to_dict()

        async def get_certificate_profile(
            name: Annotated[str, Field(description="The name of the certificate profile.")],
        ) -> str:
            with translate_errors(base_url):
                return await ejbca.get_certificate_profile(name)

        async def get_certificates_about_to_expire(
            days: Annotated[int, Field(description="Number of days until expiration.")],
            offset: Annotated[int, Field(description="List offset (often 0).")] = 0,
            max: Annotated[
                int,
                Field(
                    description=f"Maximum number of items returned (max {ejbca.expire_max_items})."
                ),
            ] = ejbca.expire_max_items,
        ) -> str:
            with translate_errors(base_url):
                return await ejbca.get_certificates_about_to_expire(days, offset, max)

        async def get_count_certificates(
            active: Annotated[
                bool, Field(description="True for active certificates only.")
            ] = True,
        ) -> str:
            with translate_errors(base_url):
                return await ejbca.get_count_certificates(active)

        async def get_latest_crl(
            issuer_dn: Annotated[str, Field(description="The subject DN of the issuing CA.")],
        ) -> Dict[str, Any]:
            with translate_errors(base_url):
                result = await ejbca.get_latest_crl(issuer_dn)
                return result.to_dict()

        async def enroll_certificate_with_csr(
            csr: Annotated[
                str, Field(description="PEM encoded Certificate Signing Request (CSR).")
            ],
            certificate_profile_name: Annotated[
                str, Field(description="Name of the certificate profile.")
            ],
            end_entity_profile_name: Annotated[
                str, Field(description="Name of the end entity profile.")
            ],
            name_of_ca: Annotated[str, Field(description="Name of the issuing CA.")],
            username: Annotated[str, Field(description="Name of the end entity.")],
            password: Annotated[str, Field(description="Password of the end entity.")],
            email: Annotated[str, Field(description="E-mail of the end entity.")],
        ) -> Dict[str, Any]:
            with translate_errors(base_url):
                result = await ejbca.enroll_certificate_with_csr(
                    csr,
                    certificate_profile_name,
                    end_entity_profile_name,
                    name_of_ca,
                    username,
                    password,
                    email,
                )
                return result.to_dict()

        async def revoke_certificate(
            issuer_dn: Annotated[str, Field(description="The issuer DN of the certificate.")],
            serial_number: Annotated[
                str, Field(description="The certificate serial number in hex format.")
            ],
            password: Annotated[str, Field(description="The end entity password.")],
            revocation_reason: Annotated[
                str,
                Field(
                    description="The revocation reason, e.g. KEY_COMPROMISE, SUPERSEDED or UNSPECIFIED."
                ),
            ],
        ) -> Dict[str, Any]:
            with translate_errors(base_url):
                result = await ejbca.revoke_certificate(
                    issuer_dn, serial_number, password, revocation_reason
                )
                return result.to_dict()

        async def parse_certificate(
            certificate: Annotated[
                str, Field(description="The PEM formatted X.509 certificate.")
            ],
        ) -> str:
            with translate_errors(base_url):
                return await pki.parse_certificate(certificate)

        return {
            "create_crl": ("Create a new CRL for an issuing CA.", create_crl),
            "get_available_cas": ("Get the list of available CAs.", get_available_cas),
            "get_ca_certificate": (
                "Get the PEM encoded certificate chain of a CA.",
                get_ca_certificate,
            ),
            "get_certificate_profile": (
                "Get a certificate profile.",
                get_certificate_profile,
            ),
            "get_certificates_about_to_expire": (
                "Get certificates about to expire.",
                get_certificates_about_to_expire,
            ),
            "get_count_certificates": (
                "Count the certificates.",
                get_count_certificates,
            ),
            "get_latest_crl": (
                "Get the latest CRL of an issuing CA in PEM format.",
                get_latest_crl,
            ),
            "enroll_certificate_with_csr": (
                "Enroll a certificate given a CSR.",
                enroll_certificate_with_csr,
            ),
            "revoke_certificate": ("Revoke a certificate.", revoke_certificate),
            "parse_certificate": (
                "Parse a PEM formatted X.509 certificate.",
                parse_certificate,
            ),
        }

    def register_tools(self, server: FastMCP) -> List[str]:
        """
        Registers every enabled tool with the MCP server.

        Returns:
            The names of the registered tools.
        """
        logging.info("Registrar: Registering tools...")
        install_error_channel(server)
        tool_functions = self._create_tool_functions()

        for tool_name in TOOL_NAMES:
            if not self.tool_settings.is_enabled(tool_name):
                logging.debug(f"Tool disabled by configuration: {tool_name}")
                continue

            description, tool_function = tool_functions[tool_name]
            server.add_tool(
                FunctionTool.from_function(
                    tool_function, name=tool_name, description=description
                )
            )
            self.registered_tools.append(tool_name)
            logging.info(f"  - Registered tool: '{tool_name}'")

        logging.info(f"Registered {len(self.registered_tools)} tools")
        return self.registered_tools
