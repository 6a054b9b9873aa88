from datetime import datetime
from typing import Optional

from marketsync.logging_config import get_logger
from marketsync.models import SyncOperation, SyncStatus, db

logger = get_logger(__name__)


class SyncOperationService:
    """Audit rows for backup runs and auto-ship batches.

    Audit writes are secondary to the operation they describe: a failure to
    record is logged and rolled back, the operation itself carries on.
    """

    @staticmethod
    def start(operation_id: str, operation_type: str, context: Optional[dict] = None) -> Optional[SyncOperation]:
        try:
            op = SyncOperation(
                operation_id=operation_id,
                operation_type=operation_type,
                status=SyncStatus.IN_PROGRESS,
                started_at=datetime.utcnow(),
                context=context or {},
            )
            db.session.add(op)
            db.session.commit()
            return op
        except Exception as exc:
            db.session.rollback()
            logger.error(f"Failed to record start of {operation_type}", operation_id=operation_id, error=str(exc))
            return None

    @staticmethod
    def complete(op: Optional[SyncOperation], processed: int = 0, failed: int = 0, context: Optional[dict] = None):
        if op is None:
            return
        SyncOperationService._finish(
            op,
            status=SyncStatus.COMPLETED if failed == 0 else SyncStatus.FAILED,
            processed=processed,
            failed=failed,
            context=context,
        )

    @staticmethod
    def fail(op: Optional[SyncOperation], error: Exception, processed: int = 0):
        if op is None:
            return
        SyncOperationService._finish(
            op,
            status=SyncStatus.FAILED,
            processed=processed,
            failed=1,
            error=error,
        )

    @staticmethod
    def _finish(op, status, processed, failed, context=None, error=None):
        try:
            now = datetime.utcnow()
            op.status = status
            op.completed_at = now
            op.duration_seconds = (now - op.started_at).total_seconds()
            op.records_processed = processed
            op.records_failed = failed
            if error is not None:
                op.error_type = type(error).__name__
                op.error_message = str(error)
            if context:
                op.context = {**(op.context or {}), **context}
            db.session.commit()
        except Exception as exc:
            db.session.rollback()
            logger.error("Failed to record sync operation result", operation_id=op.operation_id, error=str(exc))

    @staticmethod
    def recent(operation_types=None, limit: int = 20):
        query = SyncOperation.query
        if operation_types:
            query = query.filter(SyncOperation.operation_type.in_(operation_types))
        return query.order_by(SyncOperation.started_at.desc()).limit(limit).all()
