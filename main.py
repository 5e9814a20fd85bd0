"""
Approval Gateway
HTTP front for the approval engine.

Initiators post raw chain payloads and block until the custody service
resolves the approval record. Approvers can dry-run a descriptor against
the loaded policies or trigger one auto-approval round.

Each failure class maps to its own HTTP status so callers can tell a
rejection from a timeout from an uninterpretable result.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Optional

import httpx
from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from approval.approver import run_approval_round
from approval.chains import Intent, normalize_message, normalize_transaction
from approval.config import (
    CUSTODY_API_URL,
    CUSTODY_TIMEOUT_SECONDS,
    default_retry_policy,
    load_config,
)
from approval.exceptions import (
    ApprovalEngineError,
    ApprovalRejectedError,
    ApprovalTimeoutError,
    CustodyServiceError,
    DecodeError,
    ResultExtractionError,
    UnsupportedChainError,
)
from approval.policy_engine import Policy, decide
from approval.protocol import ApprovalProtocol, classify
from custody_sdk import CustodyClient
from custody_sdk.models import CanonicalTxInfo

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    DecodeError: 400,
    ApprovalRejectedError: 403,
    UnsupportedChainError: 422,
    ResultExtractionError: 502,
    CustodyServiceError: 502,
    ApprovalTimeoutError: 504,
}

# ---------------------------------------------------------------------------
# App + shared services
# ---------------------------------------------------------------------------
protocol: Optional[ApprovalProtocol] = None
policies: list[Policy] = []


def _configure() -> None:
    """Load the wallet configuration named by APPROVAL_CONFIG_PATH, if any."""
    global protocol, policies
    path = os.environ.get("APPROVAL_CONFIG_PATH")
    if not path or protocol is not None:
        return
    config = load_config(path)
    policies = config.policies
    protocol = ApprovalProtocol(
        CustodyClient(
            CUSTODY_API_URL,
            config.api_key,
            config.api_secret,
            timeout=CUSTODY_TIMEOUT_SECONDS,
        ),
        retry=default_retry_policy(),
    )
    logger.info("gateway configured: role=%s, %d policies", config.role, len(policies))


@asynccontextmanager
async def lifespan(app: FastAPI):
    _configure()
    yield


app = FastAPI(
    title="Custody Approval Gateway",
    version="1.0.0",
    lifespan=lifespan,
)


def _protocol() -> ApprovalProtocol:
    if protocol is None:
        raise HTTPException(status_code=503, detail="Custody service not configured.")
    return protocol


# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------

class TransactionRequest(BaseModel):
    wallet_id: str
    chain: str
    tx_data: str
    sign_only: bool = False
    note: str = ""


class MessageRequest(BaseModel):
    wallet_id: str
    chain: str
    message: str
    note: str = ""


class EvaluateRequest(BaseModel):
    tx_info: dict[str, Any]


class ResolutionResponse(BaseModel):
    chain: str
    action: str
    result: str


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

@app.exception_handler(ApprovalEngineError)
async def _engine_error(request, exc: ApprovalEngineError):
    status = next(
        (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 500,
    )
    return JSONResponse(
        status_code=status,
        content={"error": str(exc), "code": exc.code},
    )


@app.exception_handler(httpx.HTTPError)
async def _transport_error(request, exc: httpx.HTTPError):
    return JSONResponse(
        status_code=502,
        content={"error": f"custody service unreachable: {exc}", "code": "TRANSPORT_ERROR"},
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@app.get("/health")
def health():
    return {
        "status": "operational",
        "service": "approval-gateway",
        "configured": protocol is not None,
        "policies": len(policies),
    }


def _resolve(wallet_id: str, tx_info: CanonicalTxInfo, note: str) -> ResolutionResponse:
    result = _protocol().submit_and_wait(wallet_id, tx_info, note)
    action, _ = classify(tx_info)
    return ResolutionResponse(chain=tx_info.chain, action=action.value, result=result)


@app.post("/transactions", response_model=ResolutionResponse)
def submit_transaction(request: TransactionRequest):
    """
    Normalize a raw transaction, submit it for approval and wait.

    Returns the transaction hash, or the signed payload for sign-only
    requests.
    """
    intent = Intent.SIGN_ONLY if request.sign_only else Intent.SEND
    tx_info = normalize_transaction(request.chain, request.tx_data, intent)
    return _resolve(request.wallet_id, tx_info, request.note)


@app.post("/messages", response_model=ResolutionResponse)
def submit_message(request: MessageRequest):
    """Normalize a hex message, submit it for approval and wait for the signature."""
    tx_info = normalize_message(request.chain, request.message)
    return _resolve(request.wallet_id, tx_info, request.note)


@app.post("/evaluate")
def evaluate(request: EvaluateRequest):
    """Dry-run the loaded policies against a descriptor. Nothing is sent."""
    decision = decide(policies, request.tx_info)
    return {
        "matched": decision.matched,
        "policy_index": decision.index,
        "policy_name": decision.policy.name if decision.policy else None,
        "approved": decision.approved if decision.matched else None,
        "failed_rule": decision.failed_rule.describe() if decision.failed_rule else None,
        "rationale": decision.rationale,
    }


@app.post("/approvals/round")
def approval_round():
    """Run one auto-approval round over the pending records."""
    report = run_approval_round(_protocol(), policies)
    return {
        "outcomes": [
            {
                "approval_id": o.approval_id,
                "approved": o.approved,
                "action": o.action_category,
                "wallet_id": o.wallet_id,
            }
            for o in report.outcomes
        ],
        "skipped": report.skipped,
        "failures": [{"record_id": f.record_id, "error": f.error} for f in report.failures],
    }
