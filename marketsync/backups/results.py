import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class BackupResult:
    """
    Outcome of exporting one entity.

    The local file is authoritative. The remote mirror is best-effort, so a
    result can be local-only: `uploaded` is False and `upload_error` says why
    (None when no mirror is configured).
    """
    entity_type: str
    path: str
    row_count: int
    uploaded: bool = False
    remote_key: Optional[str] = None
    upload_error: Optional[str] = None

    @property
    def filename(self) -> str:
        return os.path.basename(self.path)

    @property
    def local_only(self) -> bool:
        return not self.uploaded

    def to_dict(self) -> dict:
        """Serialize for JSON response"""
        return {
            "entity_type": self.entity_type,
            "filename": self.filename,
            "path": self.path,
            "row_count": self.row_count,
            "uploaded": self.uploaded,
            "remote_key": self.remote_key,
            "upload_error": self.upload_error,
        }
