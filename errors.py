"""Domain-specific exceptions for the URL count processor.

The HTTP adapter catches these and translates them to responses; every class
carries the status code it maps to.
"""


class ReportError(Exception):
    """Base class for every failure the pipeline reports to the caller."""

    status_code = 500


class MissingAttachments(ReportError):
    """No file payload supplied at all (maps to HTTP 400)."""

    status_code = 400


class InputFileNotFound(ReportError):
    """No uploaded file name matches the designated input (maps to HTTP 400)."""

    status_code = 400

    def __init__(self, message: str, received: list):
        super().__init__(message)
        self.received = received


class MalformedDocument(ReportError):
    """Input bytes are not a readable spreadsheet (maps to HTTP 400)."""

    status_code = 400


class EmptyDocument(ReportError):
    """Parsed workbook has no sheets (maps to HTTP 400)."""

    status_code = 400


class SerializationError(ReportError):
    """Composed workbook could not be written back to bytes (maps to HTTP 500)."""


class RenderError(ReportError):
    """Summary PDF could not be produced (maps to HTTP 500)."""
