"""
Shared test fixtures: an in-memory custody collaborator and record builders.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Optional

import pytest

# Ensure project root is importable
sys.path.insert(0, str(Path(__file__).resolve().parent))

from approval.exceptions import CustodyServiceError
from approval.protocol import ApprovalProtocol, RetryPolicy
from custody_sdk.models import CreatedApproval, DecisionAck, PendingApproval


class FakeCustody:
    """
    In-memory stand-in for the custody service.

    ``poll_responses`` holds one listing per poll attempt; the last listing
    repeats once the script runs out.
    """

    def __init__(self, origin_record_id: str = "rec-1"):
        self.origin_record_id = origin_record_id
        self.pending: list[PendingApproval] = []
        self.poll_responses: list[list[PendingApproval]] = []
        self.poll_calls = 0
        self.created: list[dict[str, Any]] = []
        self.decisions: list[tuple[str, bool]] = []
        self.fail_decision_for: set[str] = set()

    def list_approvals(self, status: str) -> list[PendingApproval]:
        return list(self.pending)

    def get_approvals_by_record(self, record_id: str) -> list[PendingApproval]:
        self.poll_calls += 1
        if not self.poll_responses:
            return []
        index = min(self.poll_calls - 1, len(self.poll_responses) - 1)
        return self.poll_responses[index]

    def create_approval(self, wallet_id, action, tx_info, note="", expiry_seconds=0):
        self.created.append({
            "wallet_id": wallet_id,
            "action": action,
            "tx_info": tx_info,
            "note": note,
            "expiry_seconds": expiry_seconds,
        })
        return CreatedApproval(origin_record_id=self.origin_record_id)

    def set_decision(self, record_id: str, agree: bool) -> DecisionAck:
        if record_id in self.fail_decision_for:
            raise CustodyServiceError(500, f"cannot decide {record_id}")
        self.decisions.append((record_id, agree))
        return DecisionAck(record_id=record_id)


def record(
    record_id: str = "rec-1",
    status: str = "ING",
    tx_hash: str = "",
    action: str = "TRANSACTION",
    tx_info: Optional[dict[str, Any]] = None,
    custom_data: Any = None,
    final_hash: Optional[str] = None,
    wallet_id: str = "hd-1",
) -> PendingApproval:
    extra: dict[str, Any] = {"txInfo": tx_info or {}}
    if custom_data is not None:
        extra["customData"] = custom_data if isinstance(custom_data, str) else json.dumps(custom_data)
    if final_hash is not None:
        extra["authorization"] = {"finalHash": final_hash}
    return PendingApproval.model_validate({
        "recordId": record_id,
        "status": status,
        "txHash": tx_hash,
        "actionType": action,
        "hdWalletId": wallet_id,
        "extraData": extra,
    })


@pytest.fixture
def custody() -> FakeCustody:
    return FakeCustody()


@pytest.fixture
def make_record():
    return record


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def protocol(custody, sleeps) -> ApprovalProtocol:
    return ApprovalProtocol(custody, retry=RetryPolicy(max_attempts=15, interval=2.0),
                            sleep=sleeps.append)
