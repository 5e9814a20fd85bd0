"""
Signing Dispatch
Tells the local signing service to execute an agreed approval record.

This module only decides *that* a record is signed and which kind of
signature is requested; the signing service owns keys and transport.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

import httpx
from pydantic import ValidationError

from approval.exceptions import SigningError
from custody_sdk.models import SignAck

logger = logging.getLogger(__name__)


class SignKind(str, Enum):
    SIGN_MESSAGE = "sign_message"
    SIGN_TRANSACTION = "sign_transaction"
    SEND_TRANSACTION = "send_transaction"


class SigningDispatcher:
    """Client for the signing service's ``/openapi/sign/{kind}`` endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def dispatch(self, approval_id: str, kind: SignKind) -> SignAck:
        """Request a signature for ``approval_id``. Raises SigningError on failure."""
        resp = self._client.post(
            f"{self.base_url}/openapi/sign/{kind.value}",
            params={"key": self.api_key},
            json={"company_wallet_approve_record_id": approval_id},
        )
        if resp.status_code != 200:
            raise SigningError(
                approval_id, f"status code {resp.status_code}, body: {resp.text}",
            )

        try:
            ack = SignAck.model_validate_json(resp.content)
        except ValidationError as exc:
            raise SigningError(approval_id, f"invalid response body: {resp.text}") from exc
        if ack.code != 0:
            raise SigningError(approval_id, ack.message or f"code {ack.code}")

        logger.info("approval %s signed (%s), result: %s", approval_id, kind.value, ack.data)
        return ack

    def close(self) -> None:
        self._client.close()
