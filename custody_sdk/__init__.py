"""Custody SDK: client and wire models for the custody approval API."""

from custody_sdk.client import CustodyClient
from custody_sdk.models import (
    ApprovalStatus,
    CanonicalTxInfo,
    PendingApproval,
    SignMessage,
)

__all__ = [
    "ApprovalStatus",
    "CanonicalTxInfo",
    "CustodyClient",
    "PendingApproval",
    "SignMessage",
]
