"""
Chain Normalizer
Converts chain-specific raw transactions and messages into one
CanonicalTxInfo descriptor.

Each supported chain belongs to a family, and each family has exactly one
transaction builder and one message builder. Adding a chain means adding a
registry entry; adding a family means adding two builders.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from pydantic import ValidationError
from solders.message import MessageV0
from solders.transaction import VersionedTransaction

from approval.exceptions import DecodeError, UnsupportedChainError
from custody_sdk.models import CanonicalTxInfo, SignMessage

# ---------------------------------------------------------------------------
# Chain registry
# ---------------------------------------------------------------------------

class ChainFamily(str, Enum):
    INSTRUCTION_MODEL = "instruction_model"
    EVM_LIKE = "evm_like"
    OPAQUE_PAYLOAD = "opaque_payload"


class Intent(str, Enum):
    SEND = "send"
    SIGN_ONLY = "sign_only"
    SIGN_MESSAGE = "sign_message"


@dataclass(frozen=True)
class ChainSpec:
    name: str
    family: ChainFamily
    method_prefix: str

    @property
    def sign_transaction_method(self) -> str:
        return f"{self.method_prefix}_signTransaction"

    @property
    def sign_message_method(self) -> str:
        return f"{self.method_prefix}_signMessage"


SOLANA = "Solana"
BENFEN = "Benfen"
BENFEN_TESTNET = "BenfenTEST"
EVM_CHAINS = ("ETH", "BSC", "Polygon", "Arbitrum", "Optimism", "Avalanche", "Fantom")

CHAINS: dict[str, ChainSpec] = {
    SOLANA: ChainSpec(SOLANA, ChainFamily.INSTRUCTION_MODEL, "solana"),
    BENFEN: ChainSpec(BENFEN, ChainFamily.OPAQUE_PAYLOAD, "bfc"),
    BENFEN_TESTNET: ChainSpec(BENFEN_TESTNET, ChainFamily.OPAQUE_PAYLOAD, "bfc"),
    **{name: ChainSpec(name, ChainFamily.EVM_LIKE, "eth") for name in EVM_CHAINS},
}

PERSONAL_SIGN = "personal_sign"
SIGN_TYPED_DATA = "eth_signTypedData_v4"

# Intent prefix of the opaque-payload family's personal-message signing scheme.
MESSAGE_INTENT_PREFIX = bytes([3, 0, 0])


def get_chain(chain: str) -> ChainSpec:
    spec = CHAINS.get(chain)
    if spec is None:
        raise UnsupportedChainError(chain)
    return spec


def chain_family(chain: str) -> ChainFamily:
    return get_chain(chain).family


# ---------------------------------------------------------------------------
# Decoding helpers
# ---------------------------------------------------------------------------

_HEX = re.compile(r"[0-9a-fA-F]*")


def _decode_hex(chain: str, text: str) -> bytes:
    if not _HEX.fullmatch(text):
        raise DecodeError(chain, "invalid hex message: non-hex character")
    try:
        return bytes.fromhex(text)
    except ValueError as exc:
        raise DecodeError(chain, f"invalid hex message: {exc}") from exc


def _human_readable(raw: bytes) -> str:
    return raw.decode("utf-8", errors="replace")


def _uleb128(n: int) -> bytes:
    out = bytearray()
    while True:
        byte = n & 0x7F
        n >>= 7
        if n:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def opaque_message_digest(message: bytes) -> bytes:
    """blake2b-256 over the intent prefix and the length-prefixed message."""
    serialized = _uleb128(len(message)) + message
    return hashlib.blake2b(MESSAGE_INTENT_PREFIX + serialized, digest_size=32).digest()


# ---------------------------------------------------------------------------
# Transaction builders
# ---------------------------------------------------------------------------

def _compiled_instructions(message: Any) -> list[dict[str, Any]]:
    return [
        {
            "programIdIndex": ix.program_id_index,
            "accountKeyIndexes": list(ix.accounts),
            "data": base64.b64encode(bytes(ix.data)).decode(),
        }
        for ix in message.instructions
    ]


def _address_table_lookups(message: Any) -> list[dict[str, Any]]:
    if not isinstance(message, MessageV0):
        return []
    return [
        {
            "accountKey": str(lookup.account_key),
            "writableIndexes": list(lookup.writable_indexes),
            "readonlyIndexes": list(lookup.readonly_indexes),
        }
        for lookup in message.address_table_lookups
    ]


def _build_instruction_model_tx(spec: ChainSpec, raw: str) -> CanonicalTxInfo:
    try:
        wire = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(spec.name, f"invalid base64 transaction: {exc}") from exc
    try:
        transaction = VersionedTransaction.from_bytes(wire)
    except Exception as exc:  # solders surfaces bincode failures as its own types
        raise DecodeError(spec.name, f"invalid transaction bytes: {exc}") from exc

    message = transaction.message
    header = message.header
    blockhash = str(message.recent_blockhash)
    entry = {
        "recent_blockhash": blockhash,
        "header": {
            "numReadonlySignedAccounts": header.num_readonly_signed_accounts,
            "numReadonlyUnsignedAccounts": header.num_readonly_unsigned_accounts,
            "numRequiredSignatures": header.num_required_signatures,
        },
        "staticAccountKeys": [str(key) for key in message.account_keys],
        "compiledInstructions": _compiled_instructions(message),
        "addressTableLookups": _address_table_lookups(message),
    }
    return CanonicalTxInfo(
        recent_block_hash=blockhash,
        tx_payload=[entry],
        transaction_type="contract",
        active_token_enum=1,
    )


def _build_evm_tx(spec: ChainSpec, raw: str) -> CanonicalTxInfo:
    try:
        tx_info = CanonicalTxInfo.model_validate_json(raw)
    except ValidationError as exc:
        raise DecodeError(spec.name, f"evm txData format error: {exc}") from exc
    return tx_info.model_copy(update={"transaction_type": "native"})


def _build_opaque_tx(spec: ChainSpec, raw: str) -> CanonicalTxInfo:
    return CanonicalTxInfo(data=raw, payload={}, transaction_type="native")


_TX_BUILDERS: dict[ChainFamily, Callable[[ChainSpec, str], CanonicalTxInfo]] = {
    ChainFamily.INSTRUCTION_MODEL: _build_instruction_model_tx,
    ChainFamily.EVM_LIKE: _build_evm_tx,
    ChainFamily.OPAQUE_PAYLOAD: _build_opaque_tx,
}


def normalize_transaction(chain: str, raw: str, intent: Intent = Intent.SEND) -> CanonicalTxInfo:
    """
    Build the canonical descriptor for a raw transaction.

    Args:
        chain: Chain name, e.g. "Solana", "ETH", "Benfen"
        raw: base64 wire transaction (Solana), JSON object (EVM) or opaque
             string (Benfen)
        intent: SEND or SIGN_ONLY

    Raises:
        UnsupportedChainError, DecodeError
    """
    spec = get_chain(chain)
    tx_info = _TX_BUILDERS[spec.family](spec, raw)

    bridge_method = spec.sign_transaction_method if intent == Intent.SIGN_ONLY else ""
    return tx_info.model_copy(update={
        "chain": spec.name,
        "bridge_method": bridge_method,
        "method": bridge_method,
    })


# ---------------------------------------------------------------------------
# Message builders
# ---------------------------------------------------------------------------

def _build_instruction_model_msg(spec: ChainSpec, message: str) -> CanonicalTxInfo:
    decoded = _decode_hex(spec.name, message)
    return CanonicalTxInfo(
        method=spec.sign_message_method,
        msg=SignMessage(
            sign_msg=message,
            message=_human_readable(decoded),
            original_msg=message,
        ),
    )


def _build_evm_msg(spec: ChainSpec, message: str) -> CanonicalTxInfo:
    method = SIGN_TYPED_DATA
    readable = message
    hex_prefixed = message[:2] in ("0x", "0X")
    if hex_prefixed or message[0] not in "{[":
        method = PERSONAL_SIGN
        if hex_prefixed:
            readable = _human_readable(_decode_hex(spec.name, message[2:]))
    return CanonicalTxInfo(
        method=method,
        msg=SignMessage(sign_msg=message, message=readable, original_msg=message),
    )


def _build_opaque_msg(spec: ChainSpec, message: str) -> CanonicalTxInfo:
    decoded = _decode_hex(spec.name, message)
    return CanonicalTxInfo(
        method=spec.sign_message_method,
        msg=SignMessage(
            sign_msg=opaque_message_digest(decoded).hex(),
            message=_human_readable(decoded),
            original_msg=message,
        ),
    )


_MSG_BUILDERS: dict[ChainFamily, Callable[[ChainSpec, str], CanonicalTxInfo]] = {
    ChainFamily.INSTRUCTION_MODEL: _build_instruction_model_msg,
    ChainFamily.EVM_LIKE: _build_evm_msg,
    ChainFamily.OPAQUE_PAYLOAD: _build_opaque_msg,
}


def normalize_message(chain: str, message: str) -> CanonicalTxInfo:
    """Build the canonical descriptor for a message-signing request."""
    spec = get_chain(chain)
    if not message:
        raise DecodeError(spec.name, "empty message")
    tx_info = _MSG_BUILDERS[spec.family](spec, message)
    return tx_info.model_copy(update={"chain": spec.name})


def normalize(chain: str, raw: str, intent: Intent) -> CanonicalTxInfo:
    if intent == Intent.SIGN_MESSAGE:
        return normalize_message(chain, raw)
    return normalize_transaction(chain, raw, intent)
