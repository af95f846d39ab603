"""Loading curated category rules and exclusions from YAML."""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Sequence

import yaml
from sqlalchemy.orm import Session

from catalog_app.feed.errors import RulesLoadError
from catalog_app.models import Category, CategoryExclusion, CategoryRule, db

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 100


@dataclass(frozen=True)
class CategoryDefinition:
    slug: str
    name: str
    parent: str | None = None


@dataclass(frozen=True)
class RuleDefinition:
    target: str
    exact: str | None = None
    pattern: str | None = None
    title: str | None = None
    priority: int = DEFAULT_PRIORITY
    active: bool = True


@dataclass(frozen=True)
class RulesSpec:
    version: int
    source: str
    categories: Sequence[CategoryDefinition]
    rules: Sequence[RuleDefinition]
    exclusions: Sequence[str]
    checksum: str
    path: Path | None = None


@dataclass(frozen=True)
class RulesApplyResult:
    categories_created: int = 0
    categories_updated: int = 0
    rules_created: int = 0
    rules_updated: int = 0
    exclusions_created: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "categories_created": self.categories_created,
            "categories_updated": self.categories_updated,
            "rules_created": self.rules_created,
            "rules_updated": self.rules_updated,
            "exclusions_created": self.exclusions_created,
        }


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


def _compute_checksum(payload: Mapping[str, Any]) -> str:
    serialized = json.dumps(payload, sort_keys=True, ensure_ascii=False, default=str)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def parse_rules(raw: Mapping[str, Any], *, path: Path | None = None) -> RulesSpec:
    """Validate an already-decoded rules document."""

    if not isinstance(raw, Mapping):
        raise RulesLoadError("Rules document must be a mapping.")

    try:
        version = int(raw.get("version", 1))
        source = str(raw["source"]).strip().lower()
    except KeyError as exc:
        raise RulesLoadError(f"Missing required rules attribute: {exc}") from exc
    except (TypeError, ValueError) as exc:
        raise RulesLoadError(f"Invalid rules attribute: {exc}") from exc
    if not source:
        raise RulesLoadError("Rules source value cannot be empty.")

    categories: list[CategoryDefinition] = []
    seen_slugs: set[str] = set()
    for entry in raw.get("categories") or []:
        if not isinstance(entry, Mapping):
            raise RulesLoadError(f"Category definition must be a mapping, got {entry!r}")
        slug = _optional_text(entry.get("slug"))
        name = _optional_text(entry.get("name"))
        if not slug or not name:
            raise RulesLoadError(f"Category entry requires 'slug' and 'name': {entry!r}")
        slug = slug.strip()
        if slug in seen_slugs:
            raise RulesLoadError(f"Duplicate category slug '{slug}'.")
        parent = _optional_text(entry.get("parent"))
        if parent is not None and parent.strip() not in seen_slugs:
            raise RulesLoadError(f"Category '{slug}' references parent '{parent}' that is not defined before it.")
        seen_slugs.add(slug)
        categories.append(CategoryDefinition(slug=slug, name=name.strip(), parent=parent.strip() if parent else None))

    rules: list[RuleDefinition] = []
    for entry in raw.get("rules") or []:
        if not isinstance(entry, Mapping):
            raise RulesLoadError(f"Rule definition must be a mapping, got {entry!r}")
        target = _optional_text(entry.get("target"))
        if not target:
            raise RulesLoadError(f"Rule entry missing 'target': {entry!r}")
        try:
            priority = int(entry.get("priority", DEFAULT_PRIORITY))
        except (TypeError, ValueError) as exc:
            raise RulesLoadError(f"Invalid priority for rule '{target}': {exc}") from exc
        rule = RuleDefinition(
            target=target.strip(),
            exact=_optional_text(entry.get("exact")),
            pattern=_optional_text(entry.get("pattern")),
            title=_optional_text(entry.get("title")),
            priority=priority,
            active=bool(entry.get("active", True)),
        )
        if rule.exact is None and rule.pattern is None and rule.title is None:
            raise RulesLoadError(f"Rule for '{rule.target}' needs at least one of exact, pattern or title.")
        rules.append(rule)

    exclusions: list[str] = []
    for entry in raw.get("exclusions") or []:
        pattern = _optional_text(entry)
        if pattern is None:
            raise RulesLoadError(f"Exclusion pattern cannot be empty: {entry!r}")
        exclusions.append(pattern)

    return RulesSpec(
        version=version,
        source=source,
        categories=tuple(categories),
        rules=tuple(rules),
        exclusions=tuple(exclusions),
        checksum=_compute_checksum(raw),
        path=path,
    )


def load_rules_file(path: str | Path) -> RulesSpec:
    """Load and validate a YAML rules file."""

    path = Path(path)
    if not path.exists():
        raise RulesLoadError(f"Rules file not found at {path}")

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise RulesLoadError(f"Failed to parse rules YAML at {path}: {exc}") from exc

    return parse_rules(raw, path=path)


def apply_rules(spec: RulesSpec, session: Session | None = None) -> RulesApplyResult:
    """
    Upsert the categories, rules and exclusions described by ``spec``.

    Categories are keyed by slug, rules by their match fields plus target,
    exclusions by pattern. Re-applying the same file changes nothing.
    """

    session = session or db.session
    categories_created = categories_updated = 0
    rules_created = rules_updated = exclusions_created = 0

    by_slug: dict[str, Category] = {}
    for definition in spec.categories:
        category = session.query(Category).filter_by(slug=definition.slug).first()
        parent = by_slug.get(definition.parent) if definition.parent else None
        if category is None:
            category = Category(slug=definition.slug, name=definition.name, parent=parent, is_active=True)
            session.add(category)
            categories_created += 1
        elif category.name != definition.name or category.parent is not parent:
            category.name = definition.name
            category.parent = parent
            categories_updated += 1
        by_slug[definition.slug] = category
    session.flush()

    for definition in spec.rules:
        target = by_slug.get(definition.target) or session.query(Category).filter_by(slug=definition.target).first()
        if target is None:
            session.rollback()
            raise RulesLoadError(f"Rule target category '{definition.target}' does not exist.")
        rule = (
            session.query(CategoryRule)
            .filter_by(
                source=spec.source,
                source_category_exact=definition.exact,
                source_category_pattern=definition.pattern,
                title_pattern=definition.title,
                target_category_id=target.id,
            )
            .first()
        )
        if rule is None:
            session.add(
                CategoryRule(
                    source=spec.source,
                    source_category_exact=definition.exact,
                    source_category_pattern=definition.pattern,
                    title_pattern=definition.title,
                    target_category_id=target.id,
                    priority=definition.priority,
                    is_active=definition.active,
                )
            )
            rules_created += 1
        elif rule.priority != definition.priority or rule.is_active != definition.active:
            rule.priority = definition.priority
            rule.is_active = definition.active
            rules_updated += 1

    for pattern in spec.exclusions:
        exclusion = (
            session.query(CategoryExclusion)
            .filter_by(source=spec.source, source_category_pattern=pattern)
            .first()
        )
        if exclusion is None:
            session.add(CategoryExclusion(source=spec.source, source_category_pattern=pattern, is_active=True))
            exclusions_created += 1
        elif not exclusion.is_active:
            exclusion.is_active = True

    session.commit()
    result = RulesApplyResult(
        categories_created=categories_created,
        categories_updated=categories_updated,
        rules_created=rules_created,
        rules_updated=rules_updated,
        exclusions_created=exclusions_created,
    )
    logger.info("Applied %s rules file (checksum %s): %s", spec.source, spec.checksum[:12], result.as_dict())
    return result
