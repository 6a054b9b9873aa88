import os
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Base configuration class with common settings."""
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")

    # Carrier (Shiprocket) configuration
    CARRIER_API_BASE = os.environ.get("CARRIER_API_BASE", "https://apiv2.shiprocket.in/v1/external")
    CARRIER_TIMEOUT_SECONDS = int(os.environ.get("CARRIER_TIMEOUT_SECONDS", "30"))
    CARRIER_DEFAULT_PICKUP_POSTCODE = os.environ.get("CARRIER_DEFAULT_PICKUP_POSTCODE", "140601")
    CARRIER_PICKUP_LOCATION = os.environ.get("CARRIER_PICKUP_LOCATION", "Primary")
    CARRIER_ORDER_PREFIX = os.environ.get("CARRIER_ORDER_PREFIX", "ORD-")
    CARRIER_COUNTRY = os.environ.get("CARRIER_COUNTRY", "India")

    # Backup configuration
    BACKUP_DIR = os.environ.get("BACKUP_DIR", "backups")  # Use /var/data/backups in production
    BACKUP_HOUR = int(os.environ.get("BACKUP_HOUR", "0"))
    BACKUP_MINUTE = int(os.environ.get("BACKUP_MINUTE", "0"))
    BACKUP_RETRY_MINUTES = int(os.environ.get("BACKUP_RETRY_MINUTES", "30"))

    # Object storage mirror for backups (optional)
    AWS_S3_BUCKET = os.environ.get("AWS_S3_BUCKET")
    AWS_REGION = os.environ.get("AWS_REGION", "us-east-1")
    AWS_ACCESS_KEY_ID = os.environ.get("AWS_ACCESS_KEY_ID")
    AWS_SECRET_ACCESS_KEY = os.environ.get("AWS_SECRET_ACCESS_KEY")
    AWS_S3_ENDPOINT_URL = os.environ.get("AWS_S3_ENDPOINT_URL")
    BACKUP_S3_PREFIX = os.environ.get("BACKUP_S3_PREFIX", "backups")

    # Display timezone for admin-facing timestamps
    DISPLAY_TIMEZONE = os.environ.get("DISPLAY_TIMEZONE", "Asia/Kolkata")

    # CORS configuration
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FILE = os.environ.get("LOG_FILE", "logs/app.log")


class LocalConfig(Config):
    """Configuration for local development."""
    ENV = "local"
    DEBUG = True


class SandboxConfig(Config):
    """Configuration for sandbox/staging environment."""
    ENV = "sandbox"
    DEBUG = False


class ProductionConfig(Config):
    """Configuration for production environment."""
    ENV = "production"
    DEBUG = False


class TestingConfig(Config):
    """Configuration used by the test suite."""
    ENV = "testing"
    DEBUG = False
    TESTING = True
    AWS_S3_BUCKET = None


def get_config():
    """Get the appropriate configuration class based on environment variable.
    
    Environment is determined by FLASK_ENV or ENVIRONMENT variable:
    - 'local' or 'development' -> LocalConfig
    - 'sandbox' or 'staging' -> SandboxConfig
    - 'production' or 'prod' -> ProductionConfig
    - 'testing' or 'test' -> TestingConfig
    
    Defaults to LocalConfig if not set.
    """
    env = (os.environ.get("FLASK_ENV") or os.environ.get("ENVIRONMENT", "local")).lower()
    
    if env in ["local", "development", "dev"]:
        return LocalConfig
    elif env in ["sandbox", "staging", "stage"]:
        return SandboxConfig
    elif env in ["production", "prod"]:
        return ProductionConfig
    elif env in ["testing", "test"]:
        return TestingConfig
    else:
        # Default to local for safety
        return LocalConfig
