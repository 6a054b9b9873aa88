import os
import atexit

from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from marketsync.auth.routes import auth_bp
from marketsync.backups import backups_bp
from marketsync.backups.errors import BackupError
from marketsync.backups.exporter import BackupExporter
from marketsync.backups.storage import mirror_from_config
from marketsync.logging_config import configure_logging
from marketsync.models import db
from marketsync.scheduling.jobs import build_backup_scheduler
from marketsync.shipping import shipping_bp
from marketsync.shipping.errors import ShippingError

# Configure logging
logger = configure_logging(
    log_level=os.environ.get("LOG_LEVEL", "INFO"),
    log_file=os.environ.get("LOG_FILE", "logs/app.log"),
)


def init_scheduler(app):
    """Start the background scheduler and arm the daily backup."""

    # --- Prevent scheduler duplication in multi-worker environments ---
    # Only run the scheduler on one instance
    if os.environ.get("WERKZEUG_RUN_MAIN") != "true" and not os.environ.get("IS_SCHEDULER_INSTANCE"):
        logger.info("Skipping scheduler startup on this worker")
        return None

    scheduler = app.extensions["backup_scheduler"]
    scheduler.start()
    atexit.register(lambda: scheduler.shutdown(wait=False))

    # Schedule state is not persisted; re-arm from config on every boot
    next_run = scheduler.schedule(app.config["BACKUP_HOUR"], app.config["BACKUP_MINUTE"])
    logger.info(f"Scheduler started, next backup at {next_run.isoformat()}")
    return scheduler


def create_app(config_class=None):
    # Import config after dotenv is loaded
    from marketsync.config import get_config
    from marketsync.db_config import configure_database

    # Get the appropriate config class based on environment
    config_class = config_class or get_config()

    app = Flask(__name__)
    app.config.from_object(config_class)

    # Configure database separately
    configure_database(app)

    # Log the environment being used
    logger.info(f"Starting application in {config_class.ENV} environment")
    logger.info(f"Database URI: {app.config.get('SQLALCHEMY_DATABASE_URI', 'Not set')[:50]}...")

    # Get allowed origins from environment variable
    allowed_origins = app.config.get("CORS_ORIGINS", "*")
    if allowed_origins != "*":
        # Parse comma-separated list if provided
        allowed_origins = [origin.strip() for origin in allowed_origins.split(",")]

    CORS(app,
         resources={r"/api/*": {"origins": allowed_origins}},
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"])

    db.init_app(app)

    # Backup exporter and its daily scheduler live on the app for the routes and scripts
    exporter = BackupExporter(app.config["BACKUP_DIR"], mirror=mirror_from_config(app.config))
    app.extensions["backup_exporter"] = exporter
    app.extensions["backup_scheduler"] = build_backup_scheduler(app, exporter)

    # Register blueprints
    app.register_blueprint(auth_bp)
    app.register_blueprint(backups_bp)
    app.register_blueprint(shipping_bp)

    @app.route("/health")
    def health():
        status = app.extensions["backup_scheduler"].get_status()
        return jsonify({"status": "ok", "backup_schedule": status.to_dict()}), 200

    @app.errorhandler(Exception)
    def handle_exception(e):
        """Return JSON for every unhandled error."""
        if isinstance(e, HTTPException):
            return jsonify({"error": e.name, "message": e.description}), e.code
        if isinstance(e, (ShippingError, BackupError)):
            return jsonify(e.to_dict()), e.status_code

        logger.error("Unhandled exception", error=str(e), exc_info=True)
        return jsonify({
            "error": str(e),
            "message": "An error occurred processing your request"
        }), 500

    # Initialize scheduler safely
    if not app.config.get("TESTING"):
        try:
            init_scheduler(app)
        except Exception as e:
            logger.error("Failed to start scheduler", error=str(e))

    return app
