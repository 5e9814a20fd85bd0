"""
Approver Rounds
Batch auto-approval of pending records, and dispatch of agreed records to
the signing service.

Records are processed strictly in order. A failure on one record (the
decision call or the sign request) is logged and collected; the round
carries on with the remaining records.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Optional

from approval.policy_engine import Policy, PolicyEngine
from approval.protocol import ActionCategory, ApprovalProtocol
from approval.signing import SignKind, SigningDispatcher
from custody_sdk.models import ApprovalStatus, PendingApproval

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Domain types
# ---------------------------------------------------------------------------

@dataclass
class ApprovalOutcome:
    approval_id: str
    approved: bool
    action_category: str
    tx_info_json: str
    wallet_id: str
    only_sign: bool = False


@dataclass
class RecordFailure:
    record_id: str
    error: str


@dataclass
class RoundReport:
    outcomes: list[ApprovalOutcome] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failures: list[RecordFailure] = field(default_factory=list)
    signed: list[str] = field(default_factory=list)

    @property
    def approved(self) -> list[ApprovalOutcome]:
        return [o for o in self.outcomes if o.approved]

    def summary(self) -> str:
        agreed = len(self.approved)
        return (
            f"agreed={agreed} rejected={len(self.outcomes) - agreed} "
            f"skipped={len(self.skipped)} failed={len(self.failures)} "
            f"signed={len(self.signed)}"
        )


def signing_kind(outcome: ApprovalOutcome) -> SignKind:
    if outcome.action_category == ActionCategory.TRANSACTION_SIGNATURE:
        return SignKind.SIGN_MESSAGE
    if outcome.only_sign:
        return SignKind.SIGN_TRANSACTION
    return SignKind.SEND_TRANSACTION


# ---------------------------------------------------------------------------
# Rounds
# ---------------------------------------------------------------------------

def _decide_record(
    protocol: ApprovalProtocol,
    engine: PolicyEngine,
    record: PendingApproval,
    report: RoundReport,
) -> Optional[ApprovalOutcome]:
    tx_info = record.extra_data.tx_info
    decision = engine.decide(tx_info, record.record_id)
    if decision.skipped:
        report.skipped.append(record.record_id)
        return None

    try:
        ack_id = protocol.decide(record.record_id, decision.approved)
    except Exception as exc:
        logger.exception("decision for record %s failed", record.record_id)
        report.failures.append(RecordFailure(record.record_id, str(exc)))
        return None

    return ApprovalOutcome(
        approval_id=ack_id or record.record_id,
        approved=decision.approved,
        action_category=record.action_type,
        tx_info_json=json.dumps(tx_info),
        wallet_id=record.hd_wallet_id,
        only_sign=str(tx_info.get("bridgeMethod", "")).endswith("_signTransaction"),
    )


def run_approval_round(
    protocol: ApprovalProtocol,
    policies: list[Policy],
) -> RoundReport:
    """Decide every pending record once against ``policies``."""
    engine = PolicyEngine(policies)
    report = RoundReport()

    for record in protocol.list_pending(ApprovalStatus.ING.value):
        if record.status != ApprovalStatus.ING:
            continue
        outcome = _decide_record(protocol, engine, record, report)
        if outcome is not None:
            report.outcomes.append(outcome)

    logger.info("approval round: %s", report.summary())
    return report


def dispatch_approved(dispatcher: SigningDispatcher, report: RoundReport) -> RoundReport:
    """Send every agreed outcome in ``report`` to the signing service."""
    for outcome in report.approved:
        try:
            dispatcher.dispatch(outcome.approval_id, signing_kind(outcome))
        except Exception as exc:
            logger.exception("sign request for %s failed", outcome.approval_id)
            report.failures.append(RecordFailure(outcome.approval_id, str(exc)))
            continue
        report.signed.append(outcome.approval_id)
    return report


def auto_sign(
    protocol: ApprovalProtocol,
    policies: list[Policy],
    dispatcher: SigningDispatcher,
) -> RoundReport:
    """Approval round followed by signing dispatch of the agreed records."""
    return dispatch_approved(dispatcher, run_approval_round(protocol, policies))
