# config.py
import os


def _coerce_bool(value, default=False):
    """Convert environment-style truthy/falsey values to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    if value_str in {"1", "true", "yes", "on"}:
        return True
    if value_str in {"0", "false", "no", "off"}:
        return False
    return default


def _coerce_int(value, default, *, minimum=1):
    """Parse an integer setting, falling back to ``default`` on bad input."""
    if value is None or str(value).strip() == "":
        return default
    try:
        number = int(str(value).strip())
    except ValueError:
        return default
    return max(minimum, number)


class Config:
    _flask_env = os.environ.get("FLASK_ENV", "development")
    _is_production = _flask_env == "production"

    SECRET_KEY = os.environ.get("SECRET_KEY")

    if not SECRET_KEY and _is_production:
        raise ValueError(
            "SECRET_KEY environment variable is required in production. "
            'Generate with: python -c "import secrets; print(secrets.token_hex(32))"'
        )
    if not SECRET_KEY:
        SECRET_KEY = "dev-secret-key-change-in-production"

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # Feed sync configuration
    FEED_ENABLED = _coerce_bool(os.environ.get("FEED_ENABLED"), default=True)
    FEED_SOURCE = (os.environ.get("FEED_SOURCE") or "humed").strip().lower()
    FEED_URL = os.environ.get("FEED_URL")
    FEED_PATH = os.environ.get("FEED_PATH")
    FEED_BATCH_SIZE = _coerce_int(os.environ.get("FEED_BATCH_SIZE"), 100)
    FEED_CONNECT_TIMEOUT_SECONDS = _coerce_int(os.environ.get("FEED_CONNECT_TIMEOUT_SECONDS"), 30)
    FEED_DOWNLOAD_TIMEOUT_SECONDS = _coerce_int(os.environ.get("FEED_DOWNLOAD_TIMEOUT_SECONDS"), 300)
    FEED_PACK_QUANTITY_ATTRIBUTE = os.environ.get("FEED_PACK_QUANTITY_ATTRIBUTE", "Balenie")
    FEED_RULES_PATH = os.environ.get(
        "FEED_RULES_PATH",
        os.path.join(os.path.dirname(__file__), "rules", "humed_rules.yaml"),
    )
    FEED_METRICS_ENABLED = _coerce_bool(os.environ.get("FEED_METRICS_ENABLED"), default=True)


class DevelopmentConfig(Config):
    DEBUG = True
    _config_dir = os.path.dirname(os.path.abspath(__file__))
    _project_root = os.path.dirname(_config_dir)
    instance_path = os.path.join(_project_root, "instance")

    if not os.path.exists(instance_path):
        os.makedirs(instance_path, exist_ok=True)

    # SQLite URI needs forward slashes, even on Windows
    db_path = os.path.join(instance_path, "feedcatalog_dev.db").replace("\\", "/")
    db_uri = f"sqlite:///{db_path}"

    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", db_uri)
    SQLALCHEMY_ECHO = False
    if SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
        SQLALCHEMY_ENGINE_OPTIONS = {
            "connect_args": {
                "check_same_thread": False,
                "timeout": 5,
            }
        }
    else:
        SQLALCHEMY_ENGINE_OPTIONS = {}


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get("SECRET_KEY", "test-secret-key-for-testing-only")
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "connect_args": {
            "check_same_thread": False,
            "timeout": 5,
        }
    }
    FEED_URL = None
    FEED_PATH = None
    FEED_METRICS_ENABLED = False


class ProductionConfig(Config):
    DEBUG = False
    uri = os.environ.get("DATABASE_URL")
    if uri and uri.startswith("postgres://"):
        uri = uri.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = uri
    SQLALCHEMY_ECHO = False
