"""
Product strategy table used to hand catalog products to content enrichment.

A strategy names the product attributes that matter for a product family
(with a weight used to rank them) and an optional safety notice. Products
are classified by keyword search over their category and name; the first
family whose keyword list hits wins, so the ordering of ``CLASSIFICATION_ORDER``
is significant.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping


class StrategyId(str, enum.Enum):
    PAPER_HYGIENE = "paper_hygiene"
    DISPENSERS_AND_BINS = "dispensers_and_bins"
    CHEMICALS = "chemicals"
    AIR_CARE = "air_care"
    PROTECTIVE_GEAR = "protective_gear"
    CLEANING_HARDWARE = "cleaning_hardware"
    WASTE_MANAGEMENT = "waste_management"
    GASTRO_DISPOSABLES = "gastro_disposables"
    GENERIC = "generic"


@dataclass(frozen=True)
class Strategy:
    id: StrategyId
    required_spec_weights: Mapping[str, int]
    safety_warning: str = ""

    @property
    def required_specs(self) -> list[str]:
        """Attribute names ordered by descending weight (ties keep table order)."""
        return sorted(self.required_spec_weights, key=lambda name: -self.required_spec_weights[name])

    @property
    def has_safety_warning(self) -> bool:
        return bool(self.safety_warning)

    def as_dict(self) -> dict:
        return {
            "id": self.id.value,
            "required_spec_weights": dict(self.required_spec_weights),
            "required_specs": self.required_specs,
            "safety_warning": self.safety_warning,
        }


def _strategy(strategy_id: StrategyId, weights: dict[str, int], safety_warning: str = "") -> Strategy:
    return Strategy(id=strategy_id, required_spec_weights=MappingProxyType(weights), safety_warning=safety_warning)


CHEMICALS_SAFETY_WARNING = (
    "Profesionálny chemický prípravok. Pred použitím si preštudujte Kartu bezpečnostných "
    "údajov (KBÚ) a používajte ochranné pomôcky."
)

STRATEGIES: Mapping[StrategyId, Strategy] = MappingProxyType(
    {
        StrategyId.PAPER_HYGIENE: _strategy(
            StrategyId.PAPER_HYGIENE,
            {"systém": 5, "počet_vrstiev": 4, "materiál": 4, "návin": 3, "počet_útržkov": 3, "balenie": 2},
        ),
        StrategyId.DISPENSERS_AND_BINS: _strategy(
            StrategyId.DISPENSERS_AND_BINS,
            {"systém": 5, "materiál": 4, "rozmer": 4, "objem": 3, "farba": 2},
        ),
        StrategyId.CHEMICALS: _strategy(
            StrategyId.CHEMICALS,
            {"ph": 5, "objem": 4, "určenie": 4, "norma": 3, "forma": 3},
            CHEMICALS_SAFETY_WARNING,
        ),
        StrategyId.AIR_CARE: _strategy(
            StrategyId.AIR_CARE,
            {"vôňa": 5, "trvácnosť": 4, "typ": 4, "systém": 3, "balenie": 2},
        ),
        StrategyId.PROTECTIVE_GEAR: _strategy(
            StrategyId.PROTECTIVE_GEAR,
            {"veľkosť": 5, "materiál": 5, "norma": 4, "púdrovanie": 3, "balenie": 2},
        ),
        StrategyId.CLEANING_HARDWARE: _strategy(
            StrategyId.CLEANING_HARDWARE,
            {"typ_uchytenia": 5, "rozmer": 5, "materiál": 4, "farba": 3, "kompatibilita": 3},
        ),
        StrategyId.WASTE_MANAGEMENT: _strategy(
            StrategyId.WASTE_MANAGEMENT,
            {"objem": 5, "hrúbka": 5, "rozmer": 4, "materiál": 4, "typ": 3},
        ),
        StrategyId.GASTRO_DISPOSABLES: _strategy(
            StrategyId.GASTRO_DISPOSABLES,
            {"materiál": 5, "objem": 4, "rozmer": 4, "balenie": 3},
        ),
        StrategyId.GENERIC: _strategy(StrategyId.GENERIC, {"balenie": 5, "rozmer": 3}),
    }
)

# Substring keywords matched against lower-cased "category name"
STRATEGY_KEYWORDS: Mapping[StrategyId, tuple[str, ...]] = MappingProxyType(
    {
        StrategyId.PROTECTIVE_GEAR: (
            "rukavic", "respirátor", "rúšk", "odev", "štít", "nitril", "latex", "vinyl", "pracovn", "jednorazov",
        ),
        StrategyId.WASTE_MANAGEMENT: (
            "vrec", "odpad", "ldpe", "hdpe", "kôš", "popolník", "sáčk", "separač", "stojan", "kontajner",
        ),
        StrategyId.AIR_CARE: (
            "osviežovač", "vonn", "sitk", "pisoár", "blok wc", "wc blok", "pohlcovač", "aróma", "spray", "kazet",
        ),
        StrategyId.DISPENSERS_AND_BINS: (
            "zásobník", "dávkovač", "kôš", "koš", "stojan", "držiak toalet", "kúpeľňové sety",
        ),
        StrategyId.PAPER_HYGIENE: (
            "papier", "utierk", "toalet", "vreckovk", "obrúsk", "servítk", "rolk", "autocut", "matic", "zz",
            "skladané", "perforáci", "podložk", "netkaná", "vlhčené",
        ),
        StrategyId.GASTRO_DISPOSABLES: (
            "menu box", "pohár", "viečk", "misk", "taniere", "príbor", "slamk", "krabic", "obal na jedlo", "kelímk",
        ),
        StrategyId.CHEMICALS: (
            "mydl", "tekuté", "tuhé", "speňovacie", "čisti", "čistič", "prostried", "dezinfek", "kúpeľň", "kuchyň",
            "podlah", "nábytok", "okná", "profi", "past", "jar", "pur", "savo", "bref", "pulirapid", "clin",
            "fixinela",
        ),
        StrategyId.CLEANING_HARDWARE: (
            "mop", "vedr", "vozík", "metla", "kefa", "stierk", "držiak", "tyč", "násad", "pad", "handr", "mikrovlákn",
            "hubk", "špong", "duster", "oprašovač", "prachovk",
        ),
    }
)

CLASSIFICATION_ORDER: tuple[StrategyId, ...] = (
    StrategyId.PROTECTIVE_GEAR,
    StrategyId.WASTE_MANAGEMENT,
    StrategyId.AIR_CARE,
    StrategyId.DISPENSERS_AND_BINS,
    StrategyId.PAPER_HYGIENE,
    StrategyId.GASTRO_DISPOSABLES,
    StrategyId.CHEMICALS,
    StrategyId.CLEANING_HARDWARE,
)


def classify_strategy(category: str | None, name: str | None) -> Strategy:
    """Pick the strategy for a product from its category and name; falls back to ``GENERIC``."""

    haystack = f"{category or ''} {name or ''}".lower()
    for strategy_id in CLASSIFICATION_ORDER:
        if any(keyword in haystack for keyword in STRATEGY_KEYWORDS[strategy_id]):
            return STRATEGIES[strategy_id]
    return STRATEGIES[StrategyId.GENERIC]


def get_strategy(strategy_id: StrategyId | str) -> Strategy:
    return STRATEGIES[StrategyId(strategy_id)]
