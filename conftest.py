# conftest.py

import os
import tempfile
import uuid

import pytest

# Set testing environment BEFORE importing app so TestingConfig is selected
os.environ["FLASK_ENV"] = "testing"

from app import create_app  # noqa: E402
from catalog_app.models import Category, CategoryExclusion, CategoryRule, db  # noqa: E402


@pytest.fixture(scope="function")
def app():
    """Create a test Flask application backed by its own temporary SQLite file"""
    db_fd, temp_db = tempfile.mkstemp(suffix=f"_{uuid.uuid4().hex[:8]}.db")

    try:
        test_app = create_app(
            {
                "TESTING": True,
                "SQLALCHEMY_DATABASE_URI": f"sqlite:///{temp_db}",
                "SECRET_KEY": "test-secret-key-for-testing-only",
                "FEED_ENABLED": True,
                "FEED_SOURCE": "humed",
                "FEED_URL": None,
                "FEED_PATH": None,
                "FEED_BATCH_SIZE": 100,
                "FEED_METRICS_ENABLED": False,
                "ENABLE_FILE_LOGGING": False,
                "ENABLE_CONSOLE_LOGGING": False,
            }
        )

        with test_app.app_context():
            db.drop_all()
            db.create_all()
            yield test_app
            db.session.remove()
            db.drop_all()
            db.engine.dispose()
    finally:
        try:
            os.close(db_fd)
        except OSError:
            pass
        for suffix in ("", "-wal", "-shm"):
            path = f"{temp_db}{suffix}"
            if os.path.exists(path):
                os.unlink(path)


@pytest.fixture(autouse=True)
def app_context(app):
    """Automatically provide app context for all tests"""
    with app.app_context():
        yield


@pytest.fixture
def client(app):
    """Test client for the JSON endpoints"""
    return app.test_client()


@pytest.fixture
def runner(app):
    """CLI runner for ``flask feed`` commands"""
    return app.test_cli_runner()


FEED_ITEM_TEMPLATE = """
    <item>
      <g:id>{feed_id}</g:id>
      <g:sku>{sku}</g:sku>
      <g:title>{title}</g:title>
      <g:description>{description}</g:description>
      <g:cenaVhumede>{purchase}</g:cenaVhumede>
      <g:price>{retail} EUR</g:price>
      <g:weight>{weight}</g:weight>
      <g:availability>{availability}</g:availability>
      <g:image_link>https://cdn.example.com/{feed_id}.jpg</g:image_link>
      <categories>
        <category><category_id>1</category_id><category_name>Hygiena</category_name></category>
        <category><category_id>{category_id}</category_id><category_name>{category}</category_name></category>
      </categories>
      <g:additional_fields>
        <g:additional_field><n>Balenie</n><value>{pack}</value></g:additional_field>
      </g:additional_fields>
    </item>
"""


def build_feed_item(
    feed_id,
    *,
    sku=None,
    title="Toaletný papier 2-vrstvový",
    description="Biely toaletný papier",
    purchase="6.467",
    retail="11.931",
    weight="450.00g",
    availability="in stock",
    category="Toaletný papier",
    category_id="101",
    pack="24",
):
    return FEED_ITEM_TEMPLATE.format(
        feed_id=feed_id,
        sku=sku or f"SKU-{feed_id}",
        title=title,
        description=description,
        purchase=purchase,
        retail=retail,
        weight=weight,
        availability=availability,
        category=category,
        category_id=category_id,
        pack=pack,
    )


def build_feed(*items):
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<rss xmlns:g="http://base.google.com/ns/1.0" version="2.0">\n'
        "  <channel>\n"
        "    <title>HUMED feed</title>\n"
        f"{''.join(items)}"
        "  </channel>\n"
        "</rss>\n"
    ).encode("utf-8")


@pytest.fixture
def feed_builder():
    """Callable building feed XML bytes from item keyword arguments"""

    def _build(*item_kwargs):
        return build_feed(*(build_feed_item(**kwargs) for kwargs in item_kwargs))

    return _build


@pytest.fixture
def feed_file(tmp_path, feed_builder):
    """Write a feed document to a temp file and return its path"""

    def _write(*item_kwargs, name="feed.xml"):
        path = tmp_path / name
        path.write_bytes(feed_builder(*item_kwargs))
        return path

    return _write


@pytest.fixture
def taxonomy(app):
    """Seed a small taxonomy with one rule of each kind and one exclusion"""
    hygiene = Category(name="Hygiena", slug="hygiena")
    paper = Category(name="Toaletný papier", slug="toaletny-papier", parent=hygiene)
    gloves = Category(name="Rukavice", slug="rukavice")
    dispensers = Category(name="Zásobníky", slug="zasobniky")
    db.session.add_all([hygiene, paper, gloves, dispensers])
    db.session.flush()

    rules = {
        "exact": CategoryRule(
            source="humed",
            source_category_exact="Toaletný papier",
            target_category_id=paper.id,
            priority=10,
        ),
        "pattern": CategoryRule(
            source="humed",
            source_category_pattern="%Zásobník%",
            target_category_id=dispensers.id,
            priority=50,
        ),
        "title": CategoryRule(
            source="humed",
            title_pattern="%nitril%",
            target_category_id=gloves.id,
            priority=200,
        ),
    }
    db.session.add_all(rules.values())
    db.session.add(CategoryExclusion(source="humed", source_category_pattern="%Výpredaj%"))
    db.session.commit()
    return {
        "categories": {"hygiena": hygiene, "paper": paper, "gloves": gloves, "dispensers": dispensers},
        "rules": rules,
    }
