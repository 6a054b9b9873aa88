"""Scheduled jobs owned by the service."""
from datetime import timedelta

from marketsync.logging_config import SyncContext, get_logger
from marketsync.scheduling.scheduler import DailyJobScheduler
from marketsync.services.sync_operation_service import SyncOperationService

logger = get_logger(__name__)

BACKUP_JOB_NAME = "daily-backup"


def run_backup(app, exporter, operation_type: str = "scheduled_backup"):
    """
    Run a full backup inside an application context and audit it.

    Errors propagate so the scheduler can arm its retry (or the admin caller
    can report the failure).
    """
    with app.app_context():
        with SyncContext(operation_type) as ctx:
            op = SyncOperationService.start(ctx.operation_id, operation_type)
            try:
                results = exporter.export_all()
            except Exception as exc:
                SyncOperationService.fail(op, exc)
                raise

            SyncOperationService.complete(
                op,
                processed=sum(r.row_count for r in results.values()),
                context={
                    "files": {entity: r.filename for entity, r in results.items()},
                    "local_only": [entity for entity, r in results.items() if r.upload_error],
                },
            )
            return results


def build_backup_scheduler(app, exporter, scheduler=None, clock=None) -> DailyJobScheduler:
    """Create the DailyJobScheduler that drives the nightly backup."""

    def job(operation_type: str = "scheduled_backup"):
        return run_backup(app, exporter, operation_type=operation_type)

    kwargs = {}
    if clock is not None:
        kwargs["clock"] = clock
    return DailyJobScheduler(
        name=BACKUP_JOB_NAME,
        job_func=job,
        scheduler=scheduler,
        retry_delay=timedelta(minutes=app.config.get("BACKUP_RETRY_MINUTES", 30)),
        **kwargs,
    )
