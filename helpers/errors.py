"""
Error taxonomy for the sync core.

Every error carries an HTTP status so the API layer can render it as
{"success": false, "error": "..."} without per-route try/except blocks.
"""

TOKEN_HINT = ". Your access token may be expired or invalid. Please generate a new one."


class LeadSyncError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationError(LeadSyncError):
    status_code = 400


class NotFoundError(LeadSyncError):
    status_code = 404


class NoCredentialError(LeadSyncError):
    status_code = 400


class NoActiveFormsError(LeadSyncError):
    status_code = 404


class UpstreamAPIError(LeadSyncError):
    status_code = 502

    def __init__(self, message: str, http_status: int = None):
        if not message.startswith("Facebook API Error"):
            message = f"Facebook API Error: {message}"
        super().__init__(message)
        self.http_status = http_status

    def with_hint(self) -> str:
        lowered = self.message.lower()
        if "expired" in lowered or "access token" in lowered:
            return f"{self.message}{TOKEN_HINT}"
        return self.message


class NormalizationError(LeadSyncError):
    status_code = 422


class ConfigurationError(LeadSyncError):
    status_code = 500


class StorageError(LeadSyncError):
    status_code = 500
