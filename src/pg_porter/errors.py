"""Exception hierarchy shared by the export and import pipelines.

HTTP-facing errors carry the status code the API layer maps them to.

Usage:
    from pg_porter.errors import ValidationError, ChecksumMismatch

    raise ValidationError("Missing required parameter: schema")
"""


class PgPorterError(Exception):
    """Base class for all pg-porter errors."""

    status_code: int = 500


# ============================================================================
# Request / protocol errors
# ============================================================================


class ValidationError(PgPorterError):
    """Raised when a request is missing parameters or violates the chunk protocol."""

    status_code = 400


class AuthError(PgPorterError):
    """Raised when a request is not authenticated."""

    status_code = 401


class ChecksumMismatch(ValidationError):
    """Raised when a chunk's digest does not match the supplied ``chunk_hash``."""

    def __init__(self, expected: str, received: str):
        super().__init__("Checksum mismatch: chunk corrupted during transmission")
        self.expected = expected
        self.received = received


class FormatDetectionFailure(ValidationError):
    """Raised when ``format=auto`` cannot tell the upload's format apart."""

    pass


# ============================================================================
# Import session errors
# ============================================================================


class PartialRecordAtEOF(PgPorterError):
    """Raised internally when the final chunk leaves unparsed bytes behind."""

    def __init__(self, remainder_len: int):
        super().__init__(
            f"Unexpected end of file: trailing data not parsed. remainder_len={remainder_len}"
        )
        self.remainder_len = remainder_len


class StallDetected(PgPorterError):
    """Raised when an import session stops making forward progress."""

    status_code = 400

    def __init__(self, session_id: str, chunks: int):
        super().__init__(
            f"Import session {session_id} stalled: {chunks} consecutive chunks "
            f"without offset advance or remainder shrink"
        )
        self.session_id = session_id
        self.chunks = chunks


class RecordApplyError(PgPorterError):
    """Raised by an import target when a chunk's COPY fails and is rolled back."""

    def __init__(self, table: str, message: str):
        super().__init__(message)
        self.table = table


# ============================================================================
# Export errors
# ============================================================================


class CatalogQueryError(PgPorterError):
    """Raised when a metadata lookup for a single catalog object fails."""

    def __init__(self, kind: str, name: str, message: str):
        super().__init__(f"{kind} {name}: {message}")
        self.kind = kind
        self.name = name
        self.message = message


class ProfileNotFoundError(PgPorterError):
    """Raised when no database profile is configured or the name is unknown."""

    status_code = 400
