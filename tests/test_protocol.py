"""
Approval Protocol Test Suite
Submission classification, the bounded poll loop and chain-aware result
extraction, against an in-memory custody collaborator.
"""

from __future__ import annotations

import json

import pytest

from approval.chains import Intent, normalize_message, normalize_transaction
from approval.exceptions import (
    ApprovalRejectedError,
    ApprovalTimeoutError,
    CustodyServiceError,
    ResultExtractionError,
)
from approval.protocol import (
    ActionCategory,
    ApprovalProtocol,
    RetryPolicy,
    classify,
    intent_of,
)
from custody_sdk.models import CanonicalTxInfo

EVM_TX = '{"from": "0x123", "to": "0x456", "value": "0.5"}'
BENFEN_SIGNED = ["AAAC", ["c2lnbmF0dXJl"], {"digest": "x"}, 1]


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def test_plain_send_is_transaction_without_expiry():
    tx_info = normalize_transaction("ETH", EVM_TX, Intent.SEND)
    assert classify(tx_info) == (ActionCategory.TRANSACTION, 0)
    assert intent_of(tx_info) == Intent.SEND


def test_sign_only_is_contract_interaction_with_expiry():
    tx_info = normalize_transaction("ETH", EVM_TX, Intent.SIGN_ONLY)
    assert classify(tx_info) == (ActionCategory.TRANSACTION_CONTRACT_INTERACTION, 300)
    assert intent_of(tx_info) == Intent.SIGN_ONLY


def test_contract_type_is_contract_interaction():
    tx_info = CanonicalTxInfo(chain="Solana", transaction_type="contract")
    assert classify(tx_info) == (ActionCategory.TRANSACTION_CONTRACT_INTERACTION, 300)


def test_message_is_signature():
    tx_info = normalize_message("ETH", "0x68656c6c6f")
    assert classify(tx_info) == (ActionCategory.TRANSACTION_SIGNATURE, 0)
    assert intent_of(tx_info) == Intent.SIGN_MESSAGE


def test_submit_creates_record(protocol, custody):
    tx_info = normalize_transaction("ETH", EVM_TX, Intent.SIGN_ONLY)
    origin_id = protocol.submit("hd-1", tx_info, note="payout")

    assert origin_id == "rec-1"
    created = custody.created[0]
    assert created["wallet_id"] == "hd-1"
    assert created["action"] == "TRANSACTION_CONTRACT_INTERACTION"
    assert created["expiry_seconds"] == 300
    assert created["note"] == "payout"
    assert created["tx_info"] is tx_info


# ---------------------------------------------------------------------------
# Poll loop
# ---------------------------------------------------------------------------

def test_pending_for_every_attempt_times_out(protocol, custody, make_record, sleeps):
    custody.poll_responses = [[make_record(status="ING")]]

    with pytest.raises(ApprovalTimeoutError) as exc:
        protocol.poll("rec-1", Intent.SEND, "ETH")

    assert custody.poll_calls == 15
    assert exc.value.attempts == 15
    assert exc.value.record_id == "rec-1"
    assert sleeps == [2.0] * 14


def test_empty_listing_times_out(protocol, custody):
    with pytest.raises(ApprovalTimeoutError):
        protocol.poll("rec-1", Intent.SEND, "ETH")
    assert custody.poll_calls == 15


def test_reject_stops_polling_immediately(protocol, custody, make_record):
    pending = [make_record(status="ING")]
    custody.poll_responses = [pending, pending, [make_record(status="REJECT")]]

    with pytest.raises(ApprovalRejectedError):
        protocol.poll("rec-1", Intent.SEND, "ETH")

    assert custody.poll_calls == 3


def test_records_for_other_ids_are_ignored(protocol, custody, make_record):
    custody.poll_responses = [[
        make_record(record_id="rec-other", status="REJECT"),
        make_record(record_id="rec-1", status="AGREE", tx_hash="0xhash"),
    ]]
    assert protocol.poll("rec-1", Intent.SEND, "ETH") == "0xhash"


def test_agree_after_pending(protocol, custody, make_record, sleeps):
    custody.poll_responses = [
        [make_record(status="ING")],
        [make_record(status="AGREE", tx_hash="0xhash")],
    ]
    assert protocol.poll("rec-1", Intent.SEND, "ETH") == "0xhash"
    assert sleeps == [2.0]


def test_retry_policy_is_injectable(custody, make_record):
    custody.poll_responses = [[make_record(status="ING")]]
    protocol = ApprovalProtocol(custody, retry=RetryPolicy(max_attempts=3, interval=0),
                                sleep=lambda _: None)
    with pytest.raises(ApprovalTimeoutError):
        protocol.poll("rec-1", Intent.SEND, "ETH")
    assert custody.poll_calls == 3


def test_transport_errors_propagate(protocol, custody):
    def boom(record_id):
        raise CustodyServiceError(10001, "signature invalid")

    custody.get_approvals_by_record = boom
    with pytest.raises(CustodyServiceError):
        protocol.poll("rec-1", Intent.SEND, "ETH")


# ---------------------------------------------------------------------------
# Result extraction
# ---------------------------------------------------------------------------

def test_plain_send_round_trip_returns_hash_unmodified(protocol, custody, make_record):
    custody.poll_responses = [[make_record(status="AGREE", tx_hash="0xAbC123")]]
    tx_info = normalize_transaction("ETH", EVM_TX, Intent.SEND)
    assert protocol.submit_and_wait("hd-1", tx_info) == "0xAbC123"


def test_benfen_sign_only_round_trip_returns_signature(protocol, custody, make_record):
    custody.poll_responses = [[make_record(
        status="AGREE",
        tx_hash="ignored",
        custom_data={"data": json.dumps(BENFEN_SIGNED)},
    )]]
    tx_info = normalize_transaction("Benfen", "AAACAAgA", Intent.SIGN_ONLY)
    assert protocol.submit_and_wait("hd-1", tx_info) == "c2lnbmF0dXJl"


def test_benfen_sign_only_accepts_list_data(protocol, custody, make_record):
    custody.poll_responses = [[make_record(
        status="AGREE", custom_data={"data": [json.dumps(BENFEN_SIGNED), "extra"]},
    )]]
    assert protocol.poll("rec-1", Intent.SIGN_ONLY, "BenfenTEST") == "c2lnbmF0dXJl"


def test_evm_sign_only_returns_raw_signed_transaction(protocol, custody, make_record):
    custody.poll_responses = [[make_record(
        status="AGREE", tx_hash="0xhash", custom_data={"data": "0xf86c..."},
    )]]
    assert protocol.poll("rec-1", Intent.SIGN_ONLY, "ETH") == "0xf86c..."


@pytest.mark.parametrize("custom_data", [
    "",
    "not json",
    {"data": {"nested": True}},
    {"data": ""},
    {"other": "x"},
    {"data": []},
])
def test_sign_only_unwrap_failures(protocol, custody, make_record, custom_data):
    custody.poll_responses = [[make_record(status="AGREE", tx_hash="0xhash",
                                           custom_data=custom_data)]]
    with pytest.raises(ResultExtractionError):
        protocol.poll("rec-1", Intent.SIGN_ONLY, "ETH")
    assert custody.poll_calls == 1


@pytest.mark.parametrize("raw", [
    "not json",
    json.dumps(["a", ["b"], "c"]),
    json.dumps(["a", "b", "c", "d"]),
    json.dumps(["a", [], "c", "d"]),
    json.dumps({"a": 1}),
])
def test_benfen_unwrap_failures(protocol, custody, make_record, raw):
    custody.poll_responses = [[make_record(status="AGREE", custom_data={"data": raw})]]
    with pytest.raises(ResultExtractionError):
        protocol.poll("rec-1", Intent.SIGN_ONLY, "Benfen")


def test_message_signature_prefers_authorization_hash(protocol, custody, make_record):
    custody.poll_responses = [[make_record(
        status="AGREE", tx_hash="0xdirect", final_hash="0xfinal",
    )]]
    tx_info = normalize_message("ETH", "0x68656c6c6f")
    assert protocol.submit_and_wait("hd-1", tx_info) == "0xfinal"


def test_message_signature_without_authorization_uses_hash(protocol, custody, make_record):
    custody.poll_responses = [[make_record(status="AGREE", tx_hash="0xdirect")]]
    result = protocol.poll("rec-1", Intent.SIGN_MESSAGE, "ETH",
                           ActionCategory.TRANSACTION_SIGNATURE)
    assert result == "0xdirect"


def test_authorization_ignored_for_plain_transactions(protocol, custody, make_record):
    custody.poll_responses = [[make_record(status="AGREE", tx_hash="0xdirect",
                                           final_hash="0xfinal")]]
    assert protocol.poll("rec-1", Intent.SEND, "ETH") == "0xdirect"


def test_empty_result_is_extraction_failure(protocol, custody, make_record):
    custody.poll_responses = [[make_record(status="AGREE", tx_hash="")]]
    with pytest.raises(ResultExtractionError) as exc:
        protocol.poll("rec-1", Intent.SEND, "ETH")
    assert "sign result is empty" in str(exc.value)


def test_empty_authorization_hash_is_extraction_failure(protocol, custody, make_record):
    custody.poll_responses = [[make_record(status="AGREE", tx_hash="0xdirect", final_hash="")]]
    with pytest.raises(ResultExtractionError):
        protocol.poll("rec-1", Intent.SIGN_MESSAGE, "ETH", ActionCategory.TRANSACTION_SIGNATURE)


# ---------------------------------------------------------------------------
# Approver pass-throughs
# ---------------------------------------------------------------------------

def test_list_pending_and_decide(protocol, custody, make_record):
    custody.pending = [make_record(record_id="a"), make_record(record_id="b")]
    assert [r.record_id for r in protocol.list_pending()] == ["a", "b"]
    assert protocol.decide("a", True) == "a"
    assert custody.decisions == [("a", True)]


def test_protocol_does_not_deduplicate_submissions(protocol, custody):
    tx_info = normalize_transaction("ETH", EVM_TX, Intent.SEND)
    protocol.submit("hd-1", tx_info)
    protocol.submit("hd-1", tx_info)
    assert len(custody.created) == 2


def test_sign_only_on_unregistered_chain_returns_raw_data(protocol, custody, make_record):
    custody.poll_responses = [[make_record(status="AGREE", tx_hash="0xhash",
                                           custom_data={"data": "0xraw"})]]
    assert protocol.poll("rec-1", Intent.SIGN_ONLY, "Tron") == "0xraw"
