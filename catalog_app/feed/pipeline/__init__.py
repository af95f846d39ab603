"""
Feed pipeline stages: parse, stage, resolve categories, normalize, sync.
"""

from .category_resolver import CategoryResolver, MappingStats, MatchResult, like_to_regex  # noqa: F401
from .normalizer import (  # noqa: F401
    CatalogNormalizer,
    CatalogTarget,
    MissingCatalogSku,
    NormalizeOutcome,
    NormalizeResult,
    calculate_margin_percent,
    grams_to_kg,
    map_availability,
    parse_pack_quantity,
    resolve_catalog_target,
)
from .parser import FeedParser, parse_price, parse_weight  # noqa: F401
from .records import FeedCategory, RawProductRecord, RecordBuilder  # noqa: F401
from .staging import (  # noqa: F401
    StagingStore,
    UpsertOutcome,
    UpsertResult,
    compute_checksum,
    compute_feed_checksum,
)
from .sync import FeedSyncJob, PipelineResult  # noqa: F401
