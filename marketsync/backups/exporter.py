"""
Point-in-time CSV exports of marketplace entities.

Each export is written once to the backup directory and never modified.
Filenames follow `<entity>-backup-<timestamp>.csv`; the timestamp carries
millisecond precision plus a random suffix so concurrent runs can't collide.
"""
import os
import re
import uuid
from typing import Dict, List, Optional

from marketsync.backups.errors import ArtifactNotFound, InvalidArtifactName
from marketsync.backups.results import BackupResult
from marketsync.datetime_utils import filename_timestamp
from marketsync.logging_config import get_logger
from marketsync.models import query_accounts, query_catalog_items, query_transactions

logger = get_logger(__name__)

# Export order is fixed; export_all stops at the first failure
ENTITY_QUERIES = {
    "accounts": query_accounts,
    "catalog-items": query_catalog_items,
    "transactions": query_transactions,
}
ENTITY_TYPES = list(ENTITY_QUERIES)

ARTIFACT_PATTERN = re.compile(
    r"^(?P<entity>" + "|".join(re.escape(e) for e in ENTITY_TYPES) + r")-backup-[A-Za-z0-9_-]+\.csv$"
)


def parse_artifact_name(filename) -> Optional[str]:
    """Return the entity type for a valid artifact filename, else None."""
    if not isinstance(filename, str):
        return None
    match = ARTIFACT_PATTERN.match(filename)
    return match.group("entity") if match else None


class BackupExporter:
    """Writes entity snapshots to the backup directory and optionally mirrors them."""

    def __init__(self, backup_dir: str, mirror=None):
        self.backup_dir = os.path.abspath(backup_dir)
        self.mirror = mirror

    def _ensure_dir(self):
        os.makedirs(self.backup_dir, exist_ok=True)

    def _new_filename(self, entity_type: str) -> str:
        return f"{entity_type}-backup-{filename_timestamp()}-{uuid.uuid4().hex[:6]}.csv"

    # -------------------------
    # Exports
    # -------------------------
    def export_entity(self, entity_type: str) -> BackupResult:
        """
        Export one entity type to CSV.

        Raises:
            ValueError: If entity_type is not supported
            Exception: Query and filesystem errors propagate unchanged
        """
        query = ENTITY_QUERIES.get(entity_type)
        if query is None:
            raise ValueError(f"Unsupported backup entity type: {entity_type}")

        self._ensure_dir()
        df = query()
        filename = self._new_filename(entity_type)
        path = os.path.join(self.backup_dir, filename)
        # Written under a name the artifact pattern rejects until complete
        tmp_path = f"{path}.tmp"

        try:
            df.to_csv(tmp_path, index=False)
            os.replace(tmp_path, path)
        except Exception as exc:
            logger.error(f"Error backing up {entity_type}", error=str(exc), path=path)
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

        logger.info(f"{entity_type} backup created: {path}", entity_type=entity_type, rows=len(df))
        result = BackupResult(entity_type=entity_type, path=path, row_count=len(df))
        self._mirror(result)
        return result

    def _mirror(self, result: BackupResult):
        """Best-effort upload; failures are recorded on the result, never raised."""
        if self.mirror is None:
            return
        try:
            with open(result.path, "rb") as fh:
                data = fh.read()
            result.remote_key = self.mirror.upload(result.filename, data)
            result.uploaded = True
        except Exception as exc:
            result.upload_error = str(exc)
            logger.warning(
                f"Remote mirror failed for {result.filename}; local backup kept",
                entity_type=result.entity_type,
                error=str(exc),
            )

    def export_all(self) -> Dict[str, BackupResult]:
        """Export every entity in a fixed order. The first failure aborts the run."""
        logger.info("Starting full backup", entities=ENTITY_TYPES)
        results = {}
        for entity_type in ENTITY_TYPES:
            results[entity_type] = self.export_entity(entity_type)
        logger.info(
            "Full backup completed",
            files=[r.filename for r in results.values()],
            local_only=[r.entity_type for r in results.values() if self.mirror is not None and r.local_only],
        )
        return results

    # -------------------------
    # Artifacts
    # -------------------------
    def list_artifacts(self) -> Dict[str, List[str]]:
        """Group existing artifact filenames by entity type, newest first. Unrelated files are ignored."""
        grouped = {entity_type: [] for entity_type in ENTITY_TYPES}
        if not os.path.isdir(self.backup_dir):
            return grouped

        for filename in os.listdir(self.backup_dir):
            entity_type = parse_artifact_name(filename)
            if entity_type is not None:
                grouped[entity_type].append(filename)

        for filenames in grouped.values():
            filenames.sort(reverse=True)
        return grouped

    def _validated_path(self, filename) -> str:
        # Allow-list check first; nothing touches the filesystem for a bad name
        if parse_artifact_name(filename) is None:
            raise InvalidArtifactName()
        return os.path.join(self.backup_dir, filename)

    def fetch_artifact_path(self, filename) -> str:
        """
        Resolve a backup filename to its absolute path.

        Raises:
            InvalidArtifactName: If the name doesn't match the artifact pattern
            ArtifactNotFound: If no such file exists
        """
        path = self._validated_path(filename)
        if not os.path.isfile(path):
            raise ArtifactNotFound()
        return path

    def delete_artifact(self, filename) -> str:
        path = self.fetch_artifact_path(filename)
        os.remove(path)
        logger.info(f"Backup file deleted: {filename}")
        return path
