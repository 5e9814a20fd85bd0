"""
Custody SDK: Client
Thin synchronous wrapper over the custody service's company-wallet
approval API.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from typing import Any, Optional

import httpx

from approval.exceptions import CustodyServiceError
from custody_sdk.models import (
    CanonicalTxInfo,
    CreatedApproval,
    DecisionAck,
    PendingApproval,
)

logger = logging.getLogger(__name__)

PAGE = 1
PAGE_LIMIT = 20


class CustodyClient:
    """
    Client for the custody service.

    Lists approval records, creates new ones on behalf of a wallet and
    submits agree/reject decisions. Every request is signed with the
    API secret.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        api_secret: str,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Args:
            base_url: Base URL of the custody API (e.g. "https://api.example.com")
            api_key: Public API key, sent as X-API-KEY
            api_secret: Secret used to sign each request
            timeout: HTTP request timeout in seconds
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._api_secret = api_secret
        self._client = httpx.Client(timeout=timeout, transport=transport)

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _sign(self, timestamp: str, method: str, path: str, body: str) -> str:
        message = f"{timestamp}{method}{path}{body}".encode()
        return hmac.new(self._api_secret.encode(), message, hashlib.sha256).hexdigest()

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        payload: Optional[dict[str, Any]] = None,
    ) -> Any:
        body = json.dumps(payload, separators=(",", ":")) if payload is not None else ""
        timestamp = str(int(time.time() * 1000))
        headers = {
            "X-API-KEY": self.api_key,
            "X-TIMESTAMP": timestamp,
            "X-SIGNATURE": self._sign(timestamp, method, path, body),
            "Content-Type": "application/json",
        }
        resp = self._client.request(
            method,
            f"{self.base_url}{path}",
            params=params,
            content=body or None,
            headers=headers,
        )
        resp.raise_for_status()

        envelope = resp.json()
        code = envelope.get("code", 0)
        if code != 0:
            raise CustodyServiceError(code, envelope.get("msg") or envelope.get("message", ""))
        return envelope.get("data")

    # ------------------------------------------------------------------
    # Approvals
    # ------------------------------------------------------------------

    def list_approvals(self, status: str) -> list[PendingApproval]:
        """List approval records visible to this key, filtered by status."""
        data = self._request(
            "GET",
            "/api/v1/company_wallet/approvals",
            params={"page": PAGE, "limit": PAGE_LIMIT, "status": status},
        )
        return [PendingApproval.model_validate(item) for item in data or []]

    def get_approvals_by_record(self, record_id: str) -> list[PendingApproval]:
        """Sponsor-side listing used to poll a record this key created."""
        data = self._request(
            "GET",
            "/api/v2/company_wallet/approvals",
            params={
                "page": PAGE,
                "limit": PAGE_LIMIT,
                "list_type": "sponsor",
                "record_id": record_id,
            },
        )
        items = (data or {}).get("data") or []
        return [PendingApproval.model_validate(item) for item in items]

    def create_approval(
        self,
        wallet_id: str,
        action: str,
        tx_info: CanonicalTxInfo,
        note: str = "",
        expiry_seconds: int = 0,
    ) -> CreatedApproval:
        """
        Create an approval record for ``wallet_id``.

        Args:
            wallet_id: HD wallet that will sign once the record is agreed
            action: Action category (TRANSACTION, TRANSACTION_SIGNATURE, ...)
            tx_info: Canonical descriptor
            note: Free-form note shown to approvers
            expiry_seconds: Record lifetime, 0 for no expiry

        Returns:
            CreatedApproval carrying the origin record id.
        """
        wire_tx_info = tx_info.to_wire()
        logger.info(
            "create approval: wallet=%s action=%s expiry=%ss tx_info=%s",
            wallet_id, action, expiry_seconds, json.dumps(wire_tx_info),
        )
        data = self._request(
            "POST",
            "/api/v1/company_wallet/approval",
            payload={
                "hdWalletId": wallet_id,
                "action": action,
                "txInfo": wire_tx_info,
                "note": note,
                "expiredTimeout": expiry_seconds,
            },
        )
        return CreatedApproval.model_validate(data or {})

    def set_decision(self, record_id: str, agree: bool) -> DecisionAck:
        """Agree or reject a pending record."""
        data = self._request(
            "POST",
            "/api/v1/company_wallet/approval/agree",
            payload={"recordId": record_id, "agree": "agree" if agree else "reject"},
        )
        return DecisionAck.model_validate(data or {"recordId": record_id})

    def close(self) -> None:
        self._client.close()
