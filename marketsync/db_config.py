"""Database configuration for the marketsync service."""
import os


def normalize_database_url(url: str) -> str:
    """SQLAlchemy expects postgresql://, hosting providers often hand out postgres://."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def get_postgres_engine_options():
    """Engine options for the hosted PostgreSQL database."""
    from sqlalchemy.pool import QueuePool

    return {
        "pool_pre_ping": True,        # Detect dead connections before use
        "pool_recycle": 280,          # Recycle slightly before the provider's idle timeout
        "pool_size": 5,
        "max_overflow": 10,           # Backup and auto-ship runs may overlap with requests
        "pool_timeout": 30,
        "poolclass": QueuePool,
        "connect_args": {
            "sslmode": "require",
            "connect_timeout": 10,
            "application_name": "marketsync",
            "options": "-c statement_timeout=60000"  # Full-table backup selects can be slow
        },
    }


def get_database_config(environment=None):
    """Get (database_uri, engine_options) for the given environment.

    Args:
        environment: 'local', 'testing', 'sandbox' or 'production'. Read from
                     FLASK_ENV / ENVIRONMENT when omitted.

    Raises:
        ValueError: If a hosted environment has no database URL configured
    """
    if environment is None:
        environment = os.environ.get("FLASK_ENV") or os.environ.get("ENVIRONMENT", "local")
    environment = environment.lower()

    if environment in ["testing", "test"]:
        return "sqlite:///:memory:", None

    if environment in ["sandbox", "staging", "stage"]:
        database_url = os.environ.get("SANDBOX_DATABASE_URL")
        if not database_url:
            raise ValueError("SANDBOX_DATABASE_URL must be set for sandbox environment")
        return normalize_database_url(database_url), get_postgres_engine_options()

    if environment in ["production", "prod"]:
        database_url = os.environ.get("PRODUCTION_DATABASE_URL") or os.environ.get("DATABASE_URL")
        if not database_url:
            raise ValueError("PRODUCTION_DATABASE_URL or DATABASE_URL must be set for production environment")
        return normalize_database_url(database_url), get_postgres_engine_options()

    # SQLite doesn't need engine options
    return os.environ.get("LOCAL_DATABASE_URL") or "sqlite:///marketsync.sqlite", None


def configure_database(app):
    """Set SQLALCHEMY_* keys on the Flask app for the configured environment."""
    database_uri, engine_options = get_database_config(app.config.get("ENV"))

    app.config["SQLALCHEMY_DATABASE_URI"] = database_uri
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["SQLALCHEMY_ECHO"] = False

    if engine_options:
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options
