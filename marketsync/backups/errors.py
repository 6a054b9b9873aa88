class BackupError(Exception):
    """Base class for backup errors surfaced to admin callers."""
    status_code = 500
    code = "BACKUP_ERROR"
    error = "Backup failed"

    def __init__(self, message: str = None):
        self.message = message or self.error
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.error, "message": self.message, "code": self.code}


class InvalidArtifactName(BackupError):
    """Filename failed the allow-list check. Raised before any filesystem access."""
    status_code = 400
    code = "INVALID_FILENAME"
    error = "Invalid backup filename"


class ArtifactNotFound(BackupError):
    status_code = 404
    code = "NOT_FOUND"
    error = "Backup file not found"
