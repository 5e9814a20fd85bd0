"""
Typed Exceptions
Errors raised by normalization, the approval protocol, the custody client
and signing dispatch.

    ApprovalEngineError (base)
    |
    +-- NormalizationError
    |   +-- UnsupportedChainError
    |   +-- DecodeError
    |
    +-- ProtocolError
    |   +-- ApprovalRejectedError
    |   +-- ApprovalTimeoutError
    |   +-- ResultExtractionError
    |
    +-- CustodyServiceError
    +-- SigningError

Rule evaluation never raises; it resolves to ``False`` instead.
"""

from __future__ import annotations


class ApprovalEngineError(Exception):
    """Base exception. Every subclass carries a machine-readable ``code``."""

    code: str = "APPROVAL_ENGINE_ERROR"


# ---------------------------------------------------------------------------
# Normalization (terminal for the submission, never retried)
# ---------------------------------------------------------------------------

class NormalizationError(ApprovalEngineError):
    code: str = "NORMALIZATION_ERROR"


class UnsupportedChainError(NormalizationError):
    code: str = "UNSUPPORTED_CHAIN"

    def __init__(self, chain: str):
        self.chain = chain
        super().__init__(f"Chain not supported: {chain}")


class DecodeError(NormalizationError):
    code: str = "DECODE_ERROR"

    def __init__(self, chain: str, reason: str):
        self.chain = chain
        self.reason = reason
        super().__init__(f"{chain}: {reason}")


# ---------------------------------------------------------------------------
# Approval protocol
# ---------------------------------------------------------------------------

class ProtocolError(ApprovalEngineError):
    code: str = "PROTOCOL_ERROR"

    def __init__(self, record_id: str, message: str):
        self.record_id = record_id
        super().__init__(message)


class ApprovalRejectedError(ProtocolError):
    code: str = "APPROVAL_REJECTED"

    def __init__(self, record_id: str):
        super().__init__(record_id, f"approval rejected, recordId: {record_id}")


class ApprovalTimeoutError(ProtocolError):
    code: str = "APPROVAL_TIMEOUT"

    def __init__(self, record_id: str, attempts: int):
        self.attempts = attempts
        super().__init__(
            record_id,
            f"approval timeout after {attempts} attempts, recordId: {record_id}",
        )


class ResultExtractionError(ProtocolError):
    """The record was agreed but its payload could not be interpreted."""

    code: str = "RESULT_EXTRACTION_FAILED"

    def __init__(self, record_id: str, reason: str):
        self.reason = reason
        super().__init__(record_id, f"{reason}, recordId: {record_id}")


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

class CustodyServiceError(ApprovalEngineError):
    """The custody service answered with a non-zero business code."""

    code: str = "CUSTODY_SERVICE_ERROR"

    def __init__(self, service_code: int, message: str):
        self.service_code = service_code
        super().__init__(f"custody service error {service_code}: {message}")


class SigningError(ApprovalEngineError):
    code: str = "SIGNING_FAILED"

    def __init__(self, approval_id: str, message: str):
        self.approval_id = approval_id
        super().__init__(f"sign request failed for {approval_id}: {message}")
