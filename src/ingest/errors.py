"""Exceptions that abort a convert run."""


class ConvertError(Exception):
    """Exception raised when a convert run cannot proceed."""
    pass


class SourceUnreadableError(ConvertError):
    """The record source could not be opened or parsed as a whole."""
    pass


class UnsupportedFormatError(ConvertError):
    """No row provider handles the input extension."""
    pass


class ArchiveError(ConvertError):
    """A ZIP/GZIP input could not be unpacked into a record file."""
    pass
