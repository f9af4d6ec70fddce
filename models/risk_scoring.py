"""
risk_scoring.py

Produces a 0–100 risk score and a tier label from two ratios:
- DSCR (coverage)
- LTV (leverage)

Penalties are banded and additive: the DSCR penalty is applied first,
then the LTV penalty, then the score is clamped to [0, 100].

    DSCR < 1.00          -40
    1.00 <= DSCR < 1.25  -20
    LTV > 0.80           -30
    0.75 < LTV <= 0.80   -15

Tier:
    LOW       DSCR >= 1.25 and LTV <= 0.75
    HIGH      DSCR < 1.00 or LTV > 0.80
    MODERATE  otherwise
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Tuple

from models.currency import to_decimal
from models.underwriting import UNCAPPED, Ratio


class RiskTier(str, Enum):
    LOW = "LOW"
    MODERATE = "MODERATE"
    HIGH = "HIGH"


@dataclass(frozen=True)
class RiskPolicy:
    """Band thresholds and penalties. The defaults are the lending policy."""

    dscr_floor: Decimal = Decimal("1.00")
    dscr_target: Decimal = Decimal("1.25")
    ltv_cap: Decimal = Decimal("0.80")
    ltv_target: Decimal = Decimal("0.75")

    dscr_floor_penalty: int = 40
    dscr_target_penalty: int = 20
    ltv_cap_penalty: int = 30
    ltv_target_penalty: int = 15


DEFAULT_POLICY = RiskPolicy()


def _as_ratio(value: Any) -> Ratio:
    if value is UNCAPPED:
        return value
    return to_decimal(value)


class RiskScoring:
    """
    Inputs:
        policy: RiskPolicy band table (defaults to DEFAULT_POLICY)

    Output of score():
        (risk_score, risk_tier), 100 = lowest risk
    """

    def __init__(self, policy: RiskPolicy = DEFAULT_POLICY):
        self.policy = policy

    def _dscr_penalty(self, dscr: Ratio) -> int:
        if dscr < self.policy.dscr_floor:
            return self.policy.dscr_floor_penalty
        if dscr < self.policy.dscr_target:
            return self.policy.dscr_target_penalty
        return 0

    def _ltv_penalty(self, ltv: Decimal) -> int:
        if ltv > self.policy.ltv_cap:
            return self.policy.ltv_cap_penalty
        if ltv > self.policy.ltv_target:
            return self.policy.ltv_target_penalty
        return 0

    def tier(self, dscr: Ratio, ltv: Decimal) -> RiskTier:
        if dscr >= self.policy.dscr_target and ltv <= self.policy.ltv_target:
            return RiskTier.LOW
        if dscr < self.policy.dscr_floor or ltv > self.policy.ltv_cap:
            return RiskTier.HIGH
        return RiskTier.MODERATE

    def score(self, dscr: Any, ltv: Any) -> Tuple[int, RiskTier]:
        d = _as_ratio(dscr)
        lv = to_decimal(ltv)

        score = 100
        score -= self._dscr_penalty(d)
        score -= self._ltv_penalty(lv)
        score = max(0, min(100, score))

        return score, self.tier(d, lv)

    def evaluate(self, dscr: Any, ltv: Any) -> Dict:
        score, tier = self.score(dscr, ltv)
        return {
            "risk_score": score,
            "risk_tier": tier.value,
            "interpretation": self._interpret_tier(tier),
        }

    def _interpret_tier(self, tier: RiskTier) -> str:
        if tier == RiskTier.LOW:
            return "Coverage and leverage both inside policy targets."
        if tier == RiskTier.MODERATE:
            return "Acceptable, but coverage or leverage sits between the floor and the target."
        return "Coverage below 1.00x or leverage above the LTV cap."


_default_scorer = RiskScoring()


def score(dscr: Any, ltv: Any) -> Tuple[int, RiskTier]:
    return _default_scorer.score(dscr, ltv)
