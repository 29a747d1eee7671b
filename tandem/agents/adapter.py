"""
Model Gateway Adapter for Tandem.

Issues one unary chat request per planning or analysis step. The session's
credential is taken from the SessionContext passed in, never from ambient
state. Backend fallback is the gateway's concern.
"""

import logging
from typing import Any, List, Optional

from tandem.agents.state import Message
from tandem.core.gateway import AuthError, GatewayClient, GatewayError
from tandem.core.prompts import build_system_prompt
from tandem.core.session import Credential, SessionContext

logger = logging.getLogger(__name__)


class ModelGatewayAdapter:
    """
    Thin adapter from role-tagged messages to the gateway contract.

    The last message is sent as the request ``message``; earlier ones are the
    ``history``.
    """

    def __init__(self, client: Optional[Any] = None):
        self.client = client or GatewayClient()

    def build_system_prompt(self, snapshot: str) -> str:
        return build_system_prompt(snapshot)

    async def complete(
        self,
        system_prompt: str,
        messages: List[Message],
        context: Optional[SessionContext] = None
    ) -> str:
        """
        Issue one chat request.

        Args:
            system_prompt: Fixed instructions plus workspace snapshot.
            messages: Context window followed by the new message.
            context: Session whose credential authorizes the request.

        Returns:
            Generated text.

        Raises:
            GatewayError: On any non-success.
            ValueError: If messages is empty.
        """
        if not messages:
            raise ValueError("complete() needs at least one message")

        *history, latest = messages
        token = context.token if context else None

        logger.info(
            f"Gateway request: {len(history)} history turns, "
            f"authenticated={token is not None}"
        )

        return await self.client.chat(
            message=latest.text,
            system=system_prompt,
            history=[{"role": m.role, "content": m.text} for m in history],
            token=token,
        )

    async def sign_in(self, email: str, password: str) -> Credential:
        """Exchange email/password for a credential (raises AuthError)."""
        return await self.client.sign_in(email, password)

    async def aclose(self) -> None:
        close = getattr(self.client, "aclose", None)
        if close is not None:
            await close()


__all__ = ["ModelGatewayAdapter", "GatewayError", "AuthError"]
