class ZPackError(Exception):
    """Base class for zpack-specific errors."""


# Structure
class FormatError(ZPackError):
    """Header table is truncated, overflows its capacity or holds bad fields."""


class CapacityExceeded(ZPackError):
    """An entry was added to a table that already holds every slot."""


# Payload
class CodecError(ZPackError):
    """A compressed window could not be inflated to its declared size."""


# Session state
class ArchiveStateError(ZPackError):
    pass


class UseAfterDispose(ArchiveStateError):
    pass
