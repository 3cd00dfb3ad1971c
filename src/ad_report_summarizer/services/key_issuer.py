"""Key issuance gated on Google Workspace domain membership.

This is the only authorization boundary in front of the paid
text-generation service: a caller proves membership of the authorized
Workspace domain with a Google ID token and receives the server-held key.
"""

from __future__ import annotations

from typing import Any

import httpx

from ad_report_summarizer.config import settings
from ad_report_summarizer.utils.exceptions import (
    ApiKeyNotConfiguredError,
    DomainNotAllowedError,
    InvalidTokenError,
    MissingTokenError,
)
from ad_report_summarizer.utils.logging import get_logger

logger = get_logger(__name__)


class KeyIssuer:
    """Verify an ID token and hand out the configured API key."""

    def __init__(
        self,
        authorized_domain: str | None = None,
        token_info_url: str | None = None,
        api_key: str | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.authorized_domain = authorized_domain or settings.authorized_domain
        self.token_info_url = token_info_url or settings.token_info_url
        self._api_key = api_key if api_key is not None else settings.get_llm_api_key()
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def verify_token(self, id_token: str) -> dict[str, Any]:
        """Introspect the token with the identity provider.

        Raises:
            InvalidTokenError: If the provider rejects the token.
        """
        async with httpx.AsyncClient(
            timeout=self.timeout_seconds, transport=self._transport
        ) as client:
            response = await client.get(
                self.token_info_url, params={"id_token": id_token}
            )

        try:
            ticket = response.json()
        except ValueError:
            ticket = None

        if response.is_error or not isinstance(ticket, dict) or "error" in ticket:
            logger.warning(
                "ID token rejected by identity provider",
                status_code=response.status_code,
            )
            raise InvalidTokenError()
        return ticket

    async def issue(self, id_token: str | None) -> str:
        """Return the API key for a verified member of the authorized domain.

        Raises:
            MissingTokenError: If no token was supplied.
            InvalidTokenError: If the token does not verify.
            DomainNotAllowedError: If the token's ``hd`` claim is another domain.
            ApiKeyNotConfiguredError: If the server holds no key.
        """
        if not id_token:
            raise MissingTokenError()

        ticket = await self.verify_token(id_token)
        hosted_domain = ticket.get("hd")
        if hosted_domain != self.authorized_domain:
            logger.warning(
                "Key request from unauthorized domain",
                hosted_domain=hosted_domain,
            )
            raise DomainNotAllowedError(self.authorized_domain, hosted_domain)

        if not self._api_key:
            logger.error("Missing LLM API key in environment")
            raise ApiKeyNotConfiguredError()

        logger.info("API key issued", email=ticket.get("email", "(unknown)"))
        return self._api_key
