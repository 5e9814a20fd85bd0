"""
Deterministic Policy Engine

Selects the governing policy for a pending approval and decides whether
that transaction instance is acceptable.

Match rules gate: the first policy whose match rules all pass governs the
record, later policies are never evaluated. Verify rules determine: the
record is approved only if every verify rule passes. A record no policy
matches is skipped and receives no decision at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from approval.rules import Rule, check_rule

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Domain types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Policy:
    match_rules: tuple[Rule, ...] = ()
    verify_rules: tuple[Rule, ...] = ()
    name: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any], name: str = "") -> "Policy":
        """Build from ``{"matchRules": [...], "verifyRules": [...]}``.

        ``matchParams``/``verifyParams`` are accepted for older wallet files.
        """
        match = data.get("matchRules") or data.get("matchParams") or []
        verify = data.get("verifyRules") or data.get("verifyParams") or []
        return cls(
            match_rules=tuple(Rule.from_dict(r) for r in match),
            verify_rules=tuple(Rule.from_dict(r) for r in verify),
            name=str(data.get("name", name)),
        )


@dataclass
class PolicyDecision:
    policy: Optional[Policy] = None
    index: Optional[int] = None
    approved: bool = False
    failed_rule: Optional[Rule] = None      # first verify rule that failed
    rationale: list[str] = field(default_factory=list)

    @property
    def matched(self) -> bool:
        return self.policy is not None

    @property
    def skipped(self) -> bool:
        """No policy governs this record; the caller must not decide it."""
        return self.policy is None

    def summary(self) -> str:
        if self.skipped:
            lines = ["Decision:   SKIP (no policy matched)"]
        else:
            label = self.policy.name or f"#{self.index}"
            lines = [
                f"Decision:   {'AGREE' if self.approved else 'REJECT'}",
                f"Policy:     {label}",
            ]
        if self.failed_rule is not None:
            lines.append(f"Failed:     {self.failed_rule.describe()}")
        if self.rationale:
            lines.append("Rationale:")
            for r in self.rationale:
                lines.append(f"  - {r}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------

def _matches(policy: Policy, tree: Any) -> bool:
    return all(check_rule(tree, rule) for rule in policy.match_rules)


def decide(policies: list[Policy], tree: Any) -> PolicyDecision:
    """Pick the first matching policy and enforce its verify rules."""
    for index, policy in enumerate(policies):
        if not _matches(policy, tree):
            continue

        decision = PolicyDecision(policy=policy, index=index, approved=True)
        for rule in policy.verify_rules:
            if not check_rule(tree, rule):
                decision.approved = False
                decision.failed_rule = rule
                decision.rationale.append(f"verify rule failed: {rule.describe()}")
                break
        else:
            decision.rationale.append(
                f"all {len(policy.verify_rules)} verify rules passed"
            )
        return decision

    return PolicyDecision(rationale=[f"none of {len(policies)} policies matched"])


class PolicyEngine:
    """
    Ordered policy set, loaded once before a batch run.

    There is no live reload; build a new engine to change policies.
    """

    def __init__(self, policies: list[Policy]):
        self.policies = list(policies)

    def decide(self, tree: Any, record_id: str = "") -> PolicyDecision:
        decision = decide(self.policies, tree)
        if decision.skipped:
            logger.debug("record %s: no policy matched", record_id)
        else:
            logger.info(
                "record %s: policy %s -> %s",
                record_id,
                decision.policy.name or decision.index,
                "agree" if decision.approved else "reject",
            )
        return decision
