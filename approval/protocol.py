"""
Approval Protocol
Submits canonical descriptors as approval records on the custody service
and waits for them to resolve.

Per submitted record:

    PENDING --> AGREE    result extracted from the record
            --> REJECT   ApprovalRejectedError
            --> TIMEOUT  ApprovalTimeoutError (local only, after the retry budget)

Polling is the only suspension point. It is bounded by a RetryPolicy and
cannot be cancelled from inside; callers impose their own deadline.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from approval.chains import CHAINS, ChainFamily, Intent
from approval.exceptions import (
    ApprovalRejectedError,
    ApprovalTimeoutError,
    ResultExtractionError,
)
from custody_sdk.models import ApprovalStatus, CanonicalTxInfo, PendingApproval

logger = logging.getLogger(__name__)

CONTRACT_INTERACTION_EXPIRY_SECONDS = 300


class ActionCategory(str, Enum):
    TRANSACTION = "TRANSACTION"
    TRANSACTION_CONTRACT_INTERACTION = "TRANSACTION_CONTRACT_INTERACTION"
    TRANSACTION_SIGNATURE = "TRANSACTION_SIGNATURE"


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 15
    interval: float = 2.0


def classify(tx_info: CanonicalTxInfo) -> tuple[ActionCategory, int]:
    """Action category and expiry (seconds, 0 = none) for a descriptor."""
    if tx_info.sign_only or tx_info.transaction_type == "contract":
        return ActionCategory.TRANSACTION_CONTRACT_INTERACTION, CONTRACT_INTERACTION_EXPIRY_SECONDS
    if tx_info.has_message:
        return ActionCategory.TRANSACTION_SIGNATURE, 0
    return ActionCategory.TRANSACTION, 0


def intent_of(tx_info: CanonicalTxInfo) -> Intent:
    if tx_info.has_message:
        return Intent.SIGN_MESSAGE
    if tx_info.sign_only:
        return Intent.SIGN_ONLY
    return Intent.SEND


# ---------------------------------------------------------------------------
# Result extraction
# ---------------------------------------------------------------------------

def _unwrap_custom_data(record: PendingApproval) -> str:
    """Raw signed payload carried in ``extraData.customData``.

    The service sends ``{"data": "<raw>"}`` or ``{"data": ["<raw>", ...]}``.
    """
    custom_data = record.extra_data.custom_data
    if not custom_data:
        raise ResultExtractionError(record.record_id, "customData is empty")
    try:
        decoded = json.loads(custom_data)
    except ValueError as exc:
        raise ResultExtractionError(record.record_id, "invalid customData") from exc

    raw: Any = ""
    if isinstance(decoded, dict) and decoded.get("data") is not None:
        data = decoded["data"]
        if isinstance(data, str):
            raw = data
        elif isinstance(data, list) and data and isinstance(data[0], str):
            raw = data[0]
        else:
            raise ResultExtractionError(record.record_id, "invalid customData")
    if not raw:
        raise ResultExtractionError(record.record_id, "rawTx is empty")
    return raw


def _unwrap_opaque_signature(record_id: str, raw: str) -> str:
    """The opaque-payload family returns a 4-element array; the signature
    is the first entry of its second element."""
    try:
        parts = json.loads(raw)
    except ValueError as exc:
        raise ResultExtractionError(record_id, "invalid benfen tx data") from exc
    if not isinstance(parts, list) or len(parts) != 4:
        raise ResultExtractionError(record_id, "invalid benfen tx data")
    inner = parts[1]
    if not isinstance(inner, list) or not inner or not isinstance(inner[0], str):
        raise ResultExtractionError(record_id, "invalid benfen tx data")
    return inner[0]


def extract_result(
    record: PendingApproval,
    intent: Intent,
    chain: str,
    action: ActionCategory,
) -> str:
    """Chain-aware result of an AGREE record: tx hash, raw signed tx or signature."""
    result = record.tx_hash
    if intent == Intent.SIGN_ONLY:
        result = _unwrap_custom_data(record)
        spec = CHAINS.get(chain)
        if spec is not None and spec.family == ChainFamily.OPAQUE_PAYLOAD:
            result = _unwrap_opaque_signature(record.record_id, result)
    elif (
        action == ActionCategory.TRANSACTION_SIGNATURE
        and record.extra_data.authorization is not None
    ):
        result = record.extra_data.authorization.final_hash

    if not result:
        raise ResultExtractionError(record.record_id, "sign result is empty")
    return result


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------

class ApprovalProtocol:
    """
    Submit/poll protocol against a custody collaborator.

    The collaborator must provide ``list_approvals``,
    ``get_approvals_by_record``, ``create_approval`` and ``set_decision``
    (see ``custody_sdk.CustodyClient``). Its errors propagate unchanged.
    """

    def __init__(
        self,
        custody,
        retry: RetryPolicy = RetryPolicy(),
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.custody = custody
        self.retry = retry
        self._sleep = sleep

    def submit(self, wallet_id: str, tx_info: CanonicalTxInfo, note: str = "") -> str:
        """Create the approval record; returns its origin record id."""
        action, expiry = classify(tx_info)
        created = self.custody.create_approval(
            wallet_id, action.value, tx_info, note, expiry,
        )
        logger.info(
            "submitted %s for wallet %s on %s: record %s",
            action.value, wallet_id, tx_info.chain, created.origin_record_id,
        )
        return created.origin_record_id

    def poll(
        self,
        origin_id: str,
        intent: Intent,
        chain: str,
        action: ActionCategory = ActionCategory.TRANSACTION,
    ) -> str:
        """Wait for ``origin_id`` to resolve and return its result."""
        attempts = self.retry.max_attempts
        for attempt in range(1, attempts + 1):
            for record in self.custody.get_approvals_by_record(origin_id):
                if record.record_id != origin_id:
                    continue
                if record.status == ApprovalStatus.AGREE:
                    logger.info("record %s agreed on attempt %d", origin_id, attempt)
                    return extract_result(record, intent, chain, action)
                if record.status == ApprovalStatus.REJECT:
                    logger.info("record %s rejected on attempt %d", origin_id, attempt)
                    raise ApprovalRejectedError(origin_id)

            if attempt < attempts:
                self._sleep(self.retry.interval)

        logger.warning("record %s still pending after %d attempts", origin_id, attempts)
        raise ApprovalTimeoutError(origin_id, attempts)

    def submit_and_wait(
        self,
        wallet_id: str,
        tx_info: CanonicalTxInfo,
        note: str = "",
    ) -> str:
        """Initiator path: submit, then poll with the descriptor's own intent."""
        origin_id = self.submit(wallet_id, tx_info, note)
        action, _ = classify(tx_info)
        return self.poll(origin_id, intent_of(tx_info), tx_info.chain, action)

    # ------------------------------------------------------------------
    # Approver pass-throughs
    # ------------------------------------------------------------------

    def list_pending(self, status: str = ApprovalStatus.ING.value) -> list[PendingApproval]:
        return self.custody.list_approvals(status)

    def decide(self, record_id: str, agree: bool) -> str:
        ack = self.custody.set_decision(record_id, agree)
        return ack.record_id
