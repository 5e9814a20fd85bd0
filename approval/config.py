"""
Configuration
Environment defaults and the wallet configuration file.

The wallet file is JSON:

    {
      "role": "approver",
      "apiKey": "...",
      "apiSecret": "...",
      "policies": [
        {"name": "small-transfers",
         "matchRules":  [{"path": "chain", "value": "ETH", "rule": "exact"}],
         "verifyRules": [{"path": "value", "value": "0,100", "rule": "range"}]}
      ],
      "txInfo": {...}
    }

Older wallet files name the same lists "approvalParams", "matchParams" and
"verifyParams"; both spellings load.

Policies are loaded once; a running process never reloads them.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Optional

from approval.policy_engine import Policy
from approval.protocol import RetryPolicy
from custody_sdk.models import CanonicalTxInfo

# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------

CUSTODY_API_URL = os.environ.get("CUSTODY_API_URL", "https://api.openblock.com")
CUSTODY_TIMEOUT_SECONDS = float(os.environ.get("CUSTODY_TIMEOUT_SECONDS", "10"))
SIGNER_URL = os.environ.get("SIGNER_URL", "http://localhost:7790")
APPROVAL_POLL_ATTEMPTS = int(os.environ.get("APPROVAL_POLL_ATTEMPTS", "15"))
APPROVAL_POLL_INTERVAL_SECONDS = float(
    os.environ.get("APPROVAL_POLL_INTERVAL_SECONDS", "2")
)
APPROVAL_CONFIG_PATH = os.environ.get("APPROVAL_CONFIG_PATH", "config.json")

ROLES = {"initiator", "approver", "manager"}


def default_retry_policy() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=APPROVAL_POLL_ATTEMPTS,
        interval=APPROVAL_POLL_INTERVAL_SECONDS,
    )


# ---------------------------------------------------------------------------
# Wallet configuration
# ---------------------------------------------------------------------------

@dataclass
class WalletConfig:
    role: str
    api_key: str
    api_secret: str
    policies: list[Policy] = field(default_factory=list)
    tx_info: Optional[CanonicalTxInfo] = None


def parse_config(data: dict) -> WalletConfig:
    """Build a WalletConfig from decoded JSON. Raises ValueError if invalid."""
    role = data.get("role", "")
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role}")

    policies = [
        Policy.from_dict(entry, name=f"policy-{i}")
        for i, entry in enumerate(data.get("policies") or data.get("approvalParams") or [])
    ]
    tx_info = data.get("txInfo")
    return WalletConfig(
        role=role,
        api_key=data.get("apiKey", ""),
        api_secret=data.get("apiSecret", ""),
        policies=policies,
        tx_info=CanonicalTxInfo.model_validate(tx_info) if tx_info else None,
    )


def load_config(path: str = APPROVAL_CONFIG_PATH) -> WalletConfig:
    """Load the wallet configuration file."""
    with open(path, "r") as f:
        data = json.load(f)
    return parse_config(data)
