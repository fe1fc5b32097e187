"""
Exceptions raised by the DBF modules.

Every validation failure is raised at the offending call as one of the
classes below. Stream failures (OSError) are never wrapped.
"""


class DBFError(Exception):
    """Base class for all DBF errors."""


class InvalidFormatError(DBFError):
    """The bytes being read are not a supported DBF file."""


class SchemaViolationError(DBFError, ValueError):
    """A column definition breaks a naming, length or decimal rule."""


class LockedError(DBFError):
    """Structural change attempted on a locked header."""


class RecordTooLargeError(DBFError, ValueError):
    """Adding a column would push the record length past 65535 bytes."""


class SchemaMismatchError(DBFError):
    """A record's header does not match the header of the file it is used with."""


class TruncationRejectedError(DBFError, ValueError):
    """A value does not fit its field and truncation is not allowed."""


class InvalidValueError(DBFError, ValueError):
    """A date or numeric value could not be parsed."""


class UnsupportedError(DBFError, NotImplementedError):
    """The operation is not available for this column type or session."""


class EncodingUnavailableError(DBFError, LookupError):
    """The requested codec is not known to this Python runtime."""
