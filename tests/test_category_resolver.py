import pytest

from catalog_app.feed.pipeline.category_resolver import (
    CategoryResolver,
    MappingStats,
    MatchResult,
    like_matches,
)
from catalog_app.models import CategoryExclusion, CategoryMappingLog, CategoryRule, MatchType, db


@pytest.mark.parametrize(
    "value, pattern, case_sensitive, expected",
    [
        ("Papier > Toaletný", "%Toaletn%", True, True),
        ("Papier > Toaletný", "%toaletn%", True, False),
        ("Papier > Toaletný", "%toaletn%", False, True),
        ("abc", "a_c", True, True),
        ("abbc", "a_c", True, False),
        ("", "%", True, True),
        ("a.c", "a.c", True, True),
        ("abc", "a.c", True, False),
        ("line\nbreak", "line%", True, True),
    ],
)
def test_like_matches(value, pattern, case_sensitive, expected):
    assert like_matches(value, pattern, case_sensitive=case_sensitive) is expected


def test_exact_rule_matches(taxonomy):
    result = CategoryResolver().match("humed", "Toaletný papier", "Anything")

    assert result == MatchResult(
        target_category_id=taxonomy["categories"]["paper"].id,
        matched_rule_id=taxonomy["rules"]["exact"].id,
        match_type=MatchType.EXACT,
    )
    assert result.is_matched
    assert not result.is_excluded


def test_pattern_rule_matches_case_sensitively(taxonomy):
    resolver = CategoryResolver()

    hit = resolver.match("humed", "Nástenné Zásobníky", None)
    assert hit.match_type is MatchType.PATTERN
    assert hit.target_category_id == taxonomy["categories"]["dispensers"].id

    miss = resolver.match("humed", "nástenné zásobníky", None)
    assert miss.match_type is MatchType.UNMAPPED


def test_title_rule_matches_case_insensitively(taxonomy):
    result = CategoryResolver().match("humed", "Iné", "Rukavice NITRIL modré")

    assert result.match_type is MatchType.TITLE
    assert result.target_category_id == taxonomy["categories"]["gloves"].id


def test_exclusion_beats_exact_rule(taxonomy):
    db.session.add(CategoryExclusion(source="humed", source_category_pattern="Toaletný%"))
    db.session.commit()

    result = CategoryResolver().match("humed", "Toaletný papier", "nitril")

    assert result.is_excluded
    assert result.target_category_id is None
    assert result.matched_rule_id is None


def test_exact_beats_pattern_even_with_worse_priority(taxonomy):
    db.session.add(
        CategoryRule(
            source="humed",
            source_category_pattern="Toaletný%",
            target_category_id=taxonomy["categories"]["gloves"].id,
            priority=1,
        )
    )
    db.session.commit()

    result = CategoryResolver().match("humed", "Toaletný papier", None)
    assert result.match_type is MatchType.EXACT


def test_priority_then_id_break_ties(taxonomy):
    gloves_id = taxonomy["categories"]["gloves"].id
    hygiene_id = taxonomy["categories"]["hygiena"].id
    first = CategoryRule(source="humed", source_category_pattern="%Mydl%", target_category_id=gloves_id, priority=20)
    second = CategoryRule(source="humed", source_category_pattern="%Mydlá%", target_category_id=hygiene_id, priority=20)
    better = CategoryRule(source="humed", source_category_pattern="Mydlá", target_category_id=hygiene_id, priority=5)
    db.session.add_all([first, second])
    db.session.commit()

    assert CategoryResolver().match("humed", "Mydlá", None).matched_rule_id == first.id

    db.session.add(better)
    db.session.commit()
    assert CategoryResolver().match("humed", "Mydlá", None).matched_rule_id == better.id


def test_null_category_skips_category_layers(taxonomy):
    db.session.add(CategoryExclusion(source="humed", source_category_pattern="%"))
    db.session.commit()

    resolver = CategoryResolver()
    assert resolver.match("humed", None, "nitrilové rukavice").match_type is MatchType.TITLE
    assert resolver.match("humed", None, None).match_type is MatchType.UNMAPPED


def test_null_title_skips_title_layer(taxonomy):
    assert CategoryResolver().match("humed", "Iné", None).match_type is MatchType.UNMAPPED


def test_dead_and_inactive_rules_never_match(taxonomy):
    paper_id = taxonomy["categories"]["paper"].id
    db.session.add(CategoryRule(source="humed", target_category_id=paper_id, priority=0))
    db.session.add(
        CategoryRule(
            source="humed",
            source_category_exact="Iné",
            target_category_id=paper_id,
            priority=0,
            is_active=False,
        )
    )
    db.session.add(CategoryExclusion(source="humed", source_category_pattern="Iné", is_active=False))
    db.session.commit()

    assert CategoryResolver().match("humed", "Iné", None).match_type is MatchType.UNMAPPED


def test_rules_are_scoped_by_source(taxonomy):
    assert CategoryResolver().match("other", "Toaletný papier", "nitril").match_type is MatchType.UNMAPPED


def test_resolver_uses_snapshot_until_refreshed(taxonomy):
    resolver = CategoryResolver()
    assert resolver.match("humed", "Iné", None).match_type is MatchType.UNMAPPED

    db.session.add(
        CategoryRule(
            source="humed",
            source_category_exact="Iné",
            target_category_id=taxonomy["categories"]["paper"].id,
        )
    )
    db.session.commit()

    assert resolver.match("humed", "Iné", None).match_type is MatchType.UNMAPPED
    resolver.refresh()
    assert resolver.match("humed", "Iné", None).match_type is MatchType.EXACT


def test_log_mapping_and_stats(taxonomy):
    resolver = CategoryResolver()
    for category, title in (
        ("Toaletný papier", None),
        ("Toaletný papier", None),
        ("Zásobníky", None),
        ("Iné", "nitril"),
        ("Iné", None),
        ("Výpredaj leto", None),
    ):
        resolver.log_mapping("humed", "feed-1", "SKU-1", category, resolver.match("humed", category, title))
    db.session.commit()

    entry = CategoryMappingLog.query.filter_by(match_type=MatchType.EXACT).first()
    assert entry.source_category_raw == "Toaletný papier"
    assert entry.matched_rule_id == taxonomy["rules"]["exact"].id

    stats = resolver.get_stats("humed")
    assert stats == MappingStats(exact=2, pattern=1, title=1, unmapped=1, excluded=1)
    assert stats.total == 6
    assert stats.matched == 4
    assert stats.matched_percent == pytest.approx(66.67)


def test_stats_for_empty_source(app):
    stats = CategoryResolver().get_stats("humed")
    assert stats.total == 0
    assert stats.matched_percent == 0.0
