"""
Layered resolution of supplier categories into the internal taxonomy.

Resolution order for a single product:

1. exclusion patterns on the source category (product never reaches the catalog)
2. exact source-category rules
3. source-category ``LIKE`` patterns (case-sensitive)
4. title ``LIKE`` patterns (case-insensitive)
5. unmapped

Within each layer rules are tried in ``(priority, id)`` order and the first
hit wins.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import lru_cache

from sqlalchemy import func
from sqlalchemy.orm import Session

from catalog_app.models import CategoryExclusion, CategoryMappingLog, CategoryRule, MatchType, db
from catalog_app.utils.feed import metrics_enabled
from config.monitoring import FeedMonitoring

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MatchResult:
    target_category_id: int | None
    matched_rule_id: int | None
    match_type: MatchType

    @property
    def is_matched(self) -> bool:
        return self.target_category_id is not None

    @property
    def is_excluded(self) -> bool:
        return self.match_type is MatchType.EXCLUDED

    @classmethod
    def excluded(cls) -> "MatchResult":
        return cls(target_category_id=None, matched_rule_id=None, match_type=MatchType.EXCLUDED)

    @classmethod
    def unmapped(cls) -> "MatchResult":
        return cls(target_category_id=None, matched_rule_id=None, match_type=MatchType.UNMAPPED)


@dataclass(frozen=True)
class MappingStats:
    """Counts of logged mapping decisions per match type."""

    exact: int = 0
    pattern: int = 0
    title: int = 0
    unmapped: int = 0
    excluded: int = 0

    @property
    def total(self) -> int:
        return self.exact + self.pattern + self.title + self.unmapped + self.excluded

    @property
    def matched(self) -> int:
        return self.exact + self.pattern + self.title

    @property
    def matched_percent(self) -> float:
        if self.total == 0:
            return 0.0
        return round(self.matched * 100.0 / self.total, 2)

    def as_dict(self) -> dict[str, int | float]:
        return {
            "exact": self.exact,
            "pattern": self.pattern,
            "title": self.title,
            "unmapped": self.unmapped,
            "excluded": self.excluded,
            "total": self.total,
            "matched": self.matched,
            "matched_percent": self.matched_percent,
        }


@lru_cache(maxsize=1024)
def like_to_regex(pattern: str, *, case_sensitive: bool = True) -> re.Pattern[str]:
    """
    Compile a SQL ``LIKE`` pattern into an anchored regular expression.

    ``%`` matches any run of characters (including none), ``_`` exactly one.
    Every other character is literal.
    """

    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    flags = re.DOTALL
    if not case_sensitive:
        flags |= re.IGNORECASE
    return re.compile("".join(parts), flags)


def like_matches(value: str, pattern: str, *, case_sensitive: bool = True) -> bool:
    return like_to_regex(pattern, case_sensitive=case_sensitive).fullmatch(value) is not None


@dataclass(frozen=True)
class _RuleSnapshot:
    id: int
    target_category_id: int
    source_category_exact: str | None
    source_category_pattern: str | None
    title_pattern: str | None


@dataclass(frozen=True)
class _SourceSnapshot:
    exclusions: tuple[str, ...]
    rules: tuple[_RuleSnapshot, ...]


class CategoryResolver:
    """
    Resolve source categories against the curated rule set.

    Active rules and exclusions are read once per source and reused for every
    subsequent ``match`` call on this resolver, so one normalization pass sees
    a consistent rule set.
    """

    def __init__(self, session: Session | None = None) -> None:
        self.session = session or db.session
        self._snapshots: dict[str, _SourceSnapshot] = {}

    def _snapshot(self, source: str) -> _SourceSnapshot:
        snapshot = self._snapshots.get(source)
        if snapshot is not None:
            return snapshot

        exclusions = tuple(
            row.source_category_pattern
            for row in self.session.query(CategoryExclusion)
            .filter(CategoryExclusion.source == source, CategoryExclusion.is_active.is_(True))
            .order_by(CategoryExclusion.id)
            .all()
        )
        rules = []
        dead = 0
        for rule in (
            self.session.query(CategoryRule)
            .filter(CategoryRule.source == source, CategoryRule.is_active.is_(True))
            .order_by(CategoryRule.priority, CategoryRule.id)
            .all()
        ):
            if rule.is_dead:
                dead += 1
                continue
            rules.append(
                _RuleSnapshot(
                    id=rule.id,
                    target_category_id=rule.target_category_id,
                    source_category_exact=rule.source_category_exact,
                    source_category_pattern=rule.source_category_pattern,
                    title_pattern=rule.title_pattern,
                )
            )
        if dead:
            logger.warning("Ignoring %s category rule(s) for %s without any match field", dead, source)

        snapshot = _SourceSnapshot(exclusions=exclusions, rules=tuple(rules))
        self._snapshots[source] = snapshot
        logger.debug(
            "Loaded %s rule(s) and %s exclusion(s) for source %s",
            len(snapshot.rules),
            len(snapshot.exclusions),
            source,
        )
        return snapshot

    def refresh(self) -> None:
        """Drop cached rule snapshots so the next match re-reads the tables."""
        self._snapshots.clear()

    def match(self, source: str, source_category_name: str | None, product_title: str | None) -> MatchResult:
        snapshot = self._snapshot(source)

        if source_category_name is not None:
            for pattern in snapshot.exclusions:
                if like_matches(source_category_name, pattern):
                    return MatchResult.excluded()

            for rule in snapshot.rules:
                if rule.source_category_exact is not None and rule.source_category_exact == source_category_name:
                    return MatchResult(rule.target_category_id, rule.id, MatchType.EXACT)

            for rule in snapshot.rules:
                if rule.source_category_pattern is not None and like_matches(
                    source_category_name, rule.source_category_pattern
                ):
                    return MatchResult(rule.target_category_id, rule.id, MatchType.PATTERN)

        if product_title is not None:
            for rule in snapshot.rules:
                if rule.title_pattern is not None and like_matches(
                    product_title, rule.title_pattern, case_sensitive=False
                ):
                    return MatchResult(rule.target_category_id, rule.id, MatchType.TITLE)

        return MatchResult.unmapped()

    def log_mapping(
        self,
        source: str,
        source_product_id: str | None,
        source_sku: str | None,
        source_category_raw: str | None,
        result: MatchResult,
    ) -> CategoryMappingLog:
        """Append an audit row for a resolution decision (flushed with the caller's transaction)."""

        entry = CategoryMappingLog(
            source=source,
            source_product_id=source_product_id,
            source_sku=source_sku,
            source_category_raw=source_category_raw,
            matched_rule_id=result.matched_rule_id,
            target_category_id=result.target_category_id,
            match_type=result.match_type,
        )
        self.session.add(entry)
        if metrics_enabled():
            FeedMonitoring.record_category_match(source=source, match_type=result.match_type.value)
        return entry

    def get_stats(self, source: str) -> MappingStats:
        rows = (
            self.session.query(CategoryMappingLog.match_type, func.count(CategoryMappingLog.id))
            .filter(CategoryMappingLog.source == source)
            .group_by(CategoryMappingLog.match_type)
            .all()
        )
        counts = {MatchType(match_type).value: count for match_type, count in rows}
        return MappingStats(
            exact=counts.get(MatchType.EXACT.value, 0),
            pattern=counts.get(MatchType.PATTERN.value, 0),
            title=counts.get(MatchType.TITLE.value, 0),
            unmapped=counts.get(MatchType.UNMAPPED.value, 0),
            excluded=counts.get(MatchType.EXCLUDED.value, 0),
        )
