"""
Backups Module
Flask Blueprint for the admin backup surface: immediate runs, the daily
schedule, and listing/downloading/deleting CSV artifacts.
"""
from flask import Blueprint, current_app

backups_bp = Blueprint("backups", __name__, url_prefix="/api/backups")


def get_backup_exporter():
    return current_app.extensions["backup_exporter"]


def get_backup_scheduler():
    return current_app.extensions["backup_scheduler"]


from marketsync.backups import routes
