"""
Model Gateway HTTP Client for Tandem.

Speaks the gateway's unary chat contract:

    POST {server_url}/api/chat
    {"message": str, "stream": false, "system": str,
     "history": [{"role": str, "content": str}, ...]}
    -> {"content": str}

and its sign-in endpoint:

    POST {server_url}/api/auth  {"email": str, "password": str}
    -> {"token": str} | {"error": str}

Any non-2xx response becomes a GatewayError carrying the HTTP status and the
gateway's error message. Which backend the gateway falls back to is its own
concern; Tandem only needs the text.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from tandem.core.session import Credential
from tandem.core.settings import get_settings_manager

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120.0  # seconds


class GatewayError(Exception):
    """
    Model Gateway failure (network, auth or backend).

    Attributes:
        status: HTTP status code (0 for transport failures).
        message: Human-readable message.
    """

    def __init__(self, status: int, message: str):
        super().__init__(f"Gateway error {status}: {message}" if status else message)
        self.status = status
        self.message = message


class AuthError(Exception):
    """Raised when sign-in is refused or the gateway cannot be reached."""
    pass


class GatewayClient:
    """
    Async client for the Model Gateway.

    Example:
        >>> client = GatewayClient("https://gateway.example")
        >>> text = await client.chat("hi", system="You are helpful.", history=[])
    """

    def __init__(
        self,
        server_url: Optional[str] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None
    ) -> None:
        if server_url is None or timeout is None:
            settings = get_settings_manager()
            server_url = server_url or settings.get_server_url()
            timeout = timeout if timeout is not None else settings.get_request_timeout()

        self.server_url = server_url.rstrip("/")
        self._http = client or httpx.AsyncClient(timeout=timeout or DEFAULT_TIMEOUT)
        self._owns_client = client is None

        logger.info(f"GatewayClient initialized for {self.server_url}")

    def _headers(self, token: Optional[str]) -> Dict[str, str]:
        headers: Dict[str, str] = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def chat(
        self,
        message: str,
        system: str,
        history: List[Dict[str, str]],
        token: Optional[str] = None
    ) -> str:
        """
        Issue one chat request.

        Args:
            message: The new message.
            system: System prompt.
            history: Prior turns as {"role", "content"} dicts, oldest first.
            token: Bearer token of the signed-in user (optional).

        Returns:
            The generated text.

        Raises:
            GatewayError: On transport failure, non-2xx status or bad body.
        """
        payload = {
            "message": message,
            "stream": False,
            "system": system,
            "history": history,
        }

        logger.debug(
            f"POST /api/chat: message={len(message)} chars, history={len(history)} turns"
        )

        try:
            response = await self._http.post(
                f"{self.server_url}/api/chat",
                json=payload,
                headers=self._headers(token),
            )
        except httpx.HTTPError as e:
            logger.error(f"Gateway transport failure: {e}")
            raise GatewayError(0, f"Gateway unreachable: {e}") from e

        if not response.is_success:
            raise GatewayError(response.status_code, self._error_message(response))

        try:
            data = response.json()
        except ValueError as e:
            raise GatewayError(502, "Gateway returned a non-JSON body") from e

        content = data.get("content") if isinstance(data, dict) else None
        if not isinstance(content, str):
            raise GatewayError(502, "Gateway response has no content")

        logger.debug(f"Gateway responded with {len(content)} chars")
        return content

    async def sign_in(self, email: str, password: str) -> Credential:
        """
        Exchange email/password for a bearer credential.

        Raises:
            AuthError: If the gateway refuses or cannot be reached.
        """
        try:
            response = await self._http.post(
                f"{self.server_url}/api/auth",
                json={"email": email, "password": password},
                headers=self._headers(None),
            )
            data: Any = response.json()
        except httpx.HTTPError as e:
            raise AuthError(f"Connection failed: {e}") from e
        except ValueError as e:
            raise AuthError("Login failed: malformed response") from e

        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            error = data.get("error") if isinstance(data, dict) else None
            raise AuthError(error or "Login failed")

        logger.info(f"Signed in as {email}")
        return Credential(token=token, email=email)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict) and data.get("error"):
            return str(data["error"])
        return response.reason_phrase or f"HTTP {response.status_code}"


__all__ = ["GatewayClient", "GatewayError", "AuthError", "DEFAULT_TIMEOUT"]
