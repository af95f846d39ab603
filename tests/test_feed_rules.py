from pathlib import Path

import pytest

from catalog_app.feed.errors import RulesLoadError
from catalog_app.feed.rules import RulesApplyResult, apply_rules, load_rules_file, parse_rules
from catalog_app.models import Category, CategoryExclusion, CategoryRule

BUNDLED_RULES = Path(__file__).resolve().parents[1] / "config" / "rules" / "humed_rules.yaml"


def _write(tmp_path, text):
    path = tmp_path / "rules.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_rules_file_parses_all_sections(tmp_path):
    path = _write(
        tmp_path,
        """
version: 1
source: HUMED
categories:
  - slug: hygiena
    name: Hygiena
  - slug: papier
    name: Papier
    parent: hygiena
rules:
  - target: papier
    exact: Toaletný papier
    priority: 10
  - target: papier
    title: "%papier%"
exclusions:
  - "%Výpredaj%"
""",
    )

    spec = load_rules_file(path)

    assert spec.source == "humed"
    assert [category.slug for category in spec.categories] == ["hygiena", "papier"]
    assert spec.categories[1].parent == "hygiena"
    assert spec.rules[0].exact == "Toaletný papier"
    assert spec.rules[1].priority == 100
    assert spec.exclusions == ("%Výpredaj%",)
    assert len(spec.checksum) == 64
    assert spec.path == path


def test_load_rules_file_missing(tmp_path):
    with pytest.raises(RulesLoadError, match="not found"):
        load_rules_file(tmp_path / "missing.yaml")


def test_load_rules_file_invalid_yaml(tmp_path):
    with pytest.raises(RulesLoadError, match="Failed to parse"):
        load_rules_file(_write(tmp_path, "source: [unclosed"))


@pytest.mark.parametrize(
    "document, message",
    [
        ({}, "source"),
        ({"source": "humed", "rules": [{"exact": "X"}]}, "target"),
        ({"source": "humed", "rules": [{"target": "a"}]}, "at least one"),
        ({"source": "humed", "rules": [{"target": "a", "exact": "X", "priority": "high"}]}, "priority"),
        ({"source": "humed", "categories": [{"slug": "a"}]}, "slug"),
        ({"source": "humed", "categories": [{"slug": "a", "name": "A", "parent": "b"}]}, "parent"),
        ({"source": "humed", "categories": [{"slug": "a", "name": "A"}, {"slug": "a", "name": "B"}]}, "Duplicate"),
        ({"source": "humed", "exclusions": [" "]}, "Exclusion"),
    ],
)
def test_parse_rules_validation(document, message):
    with pytest.raises(RulesLoadError, match=message):
        parse_rules(document)


def test_apply_rules_is_idempotent(app):
    spec = load_rules_file(BUNDLED_RULES)

    first = apply_rules(spec)
    second = apply_rules(spec)

    assert first.categories_created == len(spec.categories)
    assert first.rules_created == len(spec.rules)
    assert first.exclusions_created == len(spec.exclusions)
    assert second == RulesApplyResult()
    assert Category.query.count() == len(spec.categories)
    assert CategoryRule.query.count() == len(spec.rules)
    assert CategoryExclusion.query.count() == len(spec.exclusions)


def test_apply_rules_updates_priority_and_parent(app):
    apply_rules(
        parse_rules(
            {
                "source": "humed",
                "categories": [{"slug": "a", "name": "A"}, {"slug": "b", "name": "B"}],
                "rules": [{"target": "b", "exact": "X", "priority": 50}],
            }
        )
    )

    result = apply_rules(
        parse_rules(
            {
                "source": "humed",
                "categories": [{"slug": "a", "name": "A"}, {"slug": "b", "name": "B2", "parent": "a"}],
                "rules": [{"target": "b", "exact": "X", "priority": 5}],
            }
        )
    )

    assert result.categories_updated == 1
    assert result.rules_updated == 1
    child = Category.query.filter_by(slug="b").one()
    assert child.name == "B2"
    assert child.parent.slug == "a"
    assert CategoryRule.query.one().priority == 5


def test_apply_rules_unknown_target(app):
    spec = parse_rules({"source": "humed", "rules": [{"target": "ghost", "exact": "X"}]})
    with pytest.raises(RulesLoadError, match="ghost"):
        apply_rules(spec)
    assert CategoryRule.query.count() == 0
