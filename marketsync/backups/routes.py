from flask import jsonify, request, send_file

from marketsync.auth.utils import admin_required
from marketsync.backups import backups_bp, get_backup_exporter, get_backup_scheduler
from marketsync.backups.errors import BackupError
from marketsync.logging_config import get_logger
from marketsync.services.sync_operation_service import SyncOperationService

logger = get_logger(__name__)


@backups_bp.route("/run", methods=["POST"])
@admin_required
def start_backup():
    """Run a full backup immediately and return the produced files."""
    try:
        results = get_backup_scheduler().run_now(operation_type="manual_backup")
        return jsonify({
            "message": "Backup completed successfully",
            "files": {entity: result.to_dict() for entity, result in results.items()}
        }), 200
    except Exception as exc:
        logger.error("Error starting backup", error=str(exc))
        return jsonify({
            "error": "Failed to start backup",
            "details": str(exc)
        }), 500


@backups_bp.route("/schedule", methods=["GET"])
@admin_required
def get_schedule_info():
    return jsonify(get_backup_scheduler().get_status().to_dict()), 200


@backups_bp.route("/schedule", methods=["POST"])
@admin_required
def schedule_backup():
    """Schedule or reschedule the daily backup. Body: {"hour": 0-23, "minute": 0-59}"""
    data = request.get_json(silent=True) or {}
    scheduler = get_backup_scheduler()
    if not scheduler.running:
        return jsonify({
            "error": "Scheduler is not running on this instance",
            "details": "Set IS_SCHEDULER_INSTANCE on the worker that should run scheduled backups"
        }), 409
    try:
        scheduler.schedule(data.get("hour"), data.get("minute"))
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400

    return jsonify({
        "message": "Backup scheduled successfully",
        "next_backup": scheduler.get_status().to_dict()
    }), 200


@backups_bp.route("/schedule", methods=["DELETE"])
@admin_required
def cancel_backup():
    if get_backup_scheduler().cancel():
        return jsonify({"message": "Scheduled backup cancelled successfully"}), 200
    return jsonify({"message": "No scheduled backup found to cancel"}), 404


@backups_bp.route("", methods=["GET"])
@admin_required
def list_backups():
    try:
        return jsonify(get_backup_exporter().list_artifacts()), 200
    except Exception as exc:
        logger.error("Error getting backups list", error=str(exc))
        return jsonify({"error": "Failed to get backups list", "details": str(exc)}), 500


@backups_bp.route("/history", methods=["GET"])
@admin_required
def backup_history():
    """Recent backup runs from the sync operation audit table."""
    limit = request.args.get("limit", 20, type=int)
    operations = [
        op.to_dict()
        for op in SyncOperationService.recent(["scheduled_backup", "manual_backup"], limit=limit)
    ]
    return jsonify({"operations": operations}), 200


@backups_bp.route("/<filename>", methods=["GET"])
@admin_required
def download_backup(filename):
    try:
        path = get_backup_exporter().fetch_artifact_path(filename)
    except BackupError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    return send_file(path, mimetype="text/csv", as_attachment=True, download_name=filename)


@backups_bp.route("/<filename>", methods=["DELETE"])
@admin_required
def delete_backup(filename):
    try:
        get_backup_exporter().delete_artifact(filename)
    except BackupError as exc:
        return jsonify(exc.to_dict()), exc.status_code
    except OSError as exc:
        logger.error("Error deleting backup", filename=filename, error=str(exc))
        return jsonify({"error": "Failed to delete backup", "details": str(exc)}), 500
    return jsonify({"message": "Backup file deleted successfully"}), 200
