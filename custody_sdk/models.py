"""
Custody SDK: Data Models
Wire shapes exchanged with the custody service. Field names are camelCase
on the wire and snake_case in Python.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ApprovalStatus(str, Enum):
    ING = "ING"
    AGREE = "AGREE"
    REJECT = "REJECT"


class SignMessage(_WireModel):
    """Signable, human-readable and original forms of a message."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    sign_msg: str = ""
    message: str = ""
    original_msg: str = ""


class CanonicalTxInfo(_WireModel):
    """Chain-agnostic transaction / message descriptor.

    Unknown fields (EVM ``from``/``to``/``value``/``gas``...) are kept and
    sent back to the service unchanged.
    """
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow", frozen=True,
    )

    chain: str = ""
    method: str = ""
    bridge_method: str = ""
    transaction_type: str = ""
    recent_block_hash: Optional[str] = None
    tx_payload: Optional[list[Any]] = None
    payload: Optional[Any] = None
    data: Optional[str] = None
    active_token_enum: Optional[int] = None
    msg: Optional[SignMessage] = None

    @property
    def sign_only(self) -> bool:
        return self.bridge_method.endswith("_signTransaction")

    @property
    def has_message(self) -> bool:
        return self.msg is not None and self.msg.sign_msg != ""


class Authorization(_WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    final_hash: str = ""


class ApprovalExtraData(_WireModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    tx_info: dict[str, Any] = Field(default_factory=dict)
    custom_data: str = ""
    authorization: Optional[Authorization] = None

    # The service sends null for records without a descriptor or custom data.
    @field_validator("tx_info", mode="before")
    @classmethod
    def _null_tx_info(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("custom_data", mode="before")
    @classmethod
    def _null_custom_data(cls, value: Any) -> Any:
        return "" if value is None else value


class PendingApproval(_WireModel):
    """An approval record as listed by the custody service."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    record_id: str
    status: str = ApprovalStatus.ING.value
    chain: str = ""
    action_type: str = ""
    hd_wallet_id: str = ""
    tx_hash: str = ""
    extra_data: ApprovalExtraData = Field(default_factory=ApprovalExtraData)

    @field_validator("extra_data", mode="before")
    @classmethod
    def _null_extra_data(cls, value: Any) -> Any:
        return {} if value is None else value


class CreatedApproval(_WireModel):
    """Result of creating an approval record."""
    origin_record_id: str


class DecisionAck(_WireModel):
    """Acknowledgment of an agree/reject decision."""
    record_id: str


class SignAck(BaseModel):
    """Response of the local signing service."""
    code: int = 0
    message: str = ""
    data: Any = None
