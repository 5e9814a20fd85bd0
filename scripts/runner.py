#!/usr/bin/env python3
"""
Approval Runner

Runs one wallet role from a configuration file:
    initiator  submit the configured txInfo once and print the result
    approver   decide pending approvals every 5 seconds
    manager    decide pending approvals and dispatch agreed ones for signing

Usage:
    python scripts/runner.py --config config.json --wallet-id <hd-wallet-id>
    python scripts/runner.py --config config.json --once
"""

from __future__ import annotations

import argparse
import logging
import os
import sys
import time

# Ensure project root is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from approval.approver import auto_sign, run_approval_round
from approval.config import (
    APPROVAL_CONFIG_PATH,
    CUSTODY_API_URL,
    CUSTODY_TIMEOUT_SECONDS,
    SIGNER_URL,
    WalletConfig,
    default_retry_policy,
    load_config,
)
from approval.exceptions import ApprovalEngineError
from approval.protocol import ApprovalProtocol
from approval.signing import SigningDispatcher
from custody_sdk import CustodyClient

ROUND_INTERVAL_SECONDS = 5

logger = logging.getLogger("approval.runner")


def run_initiator(protocol: ApprovalProtocol, config: WalletConfig, wallet_id: str) -> int:
    if config.tx_info is None:
        logger.error("initiator role requires txInfo in the configuration")
        return 2
    try:
        result = protocol.submit_and_wait(wallet_id, config.tx_info)
    except ApprovalEngineError as exc:
        logger.error("Approval fail: %s", exc)
        return 1
    logger.info("Approval response: %s", result)
    return 0


def run_rounds(protocol: ApprovalProtocol, config: WalletConfig, once: bool) -> int:
    dispatcher = None
    if config.role == "manager":
        dispatcher = SigningDispatcher(SIGNER_URL, config.api_key)

    while True:
        if dispatcher is not None:
            auto_sign(protocol, config.policies, dispatcher)
        else:
            run_approval_round(protocol, config.policies)
        if once:
            return 0
        time.sleep(ROUND_INTERVAL_SECONDS)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Custody approval runner")
    parser.add_argument("--config", default=APPROVAL_CONFIG_PATH,
                        help="Path to the configuration file")
    parser.add_argument("--wallet-id", default="",
                        help="HD wallet id used by the initiator role")
    parser.add_argument("--once", action="store_true",
                        help="Run a single approver/manager round and exit")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as exc:
        logger.error("Failed to load configuration from %s: %s", args.config, exc)
        return 2

    client = CustodyClient(
        CUSTODY_API_URL, config.api_key, config.api_secret,
        timeout=CUSTODY_TIMEOUT_SECONDS,
    )
    protocol = ApprovalProtocol(client, retry=default_retry_policy())
    try:
        if config.role == "initiator":
            return run_initiator(protocol, config, args.wallet_id)
        return run_rounds(protocol, config, args.once)
    finally:
        client.close()


if __name__ == "__main__":
    sys.exit(main())
