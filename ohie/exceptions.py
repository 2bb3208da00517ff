"""Exceptions raised by OHIE."""


class OhieError(Exception):
    """Base class for all OHIE errors."""
    pass


class LoadError(OhieError):
    """The source is unreadable, misses a required column, or has no valid rows."""
    pass


class UnsupportedVariableKindError(OhieError):
    """The summary engine cannot tell whether a variable is numeric, categorical or temporal."""

    def __init__(self, variable: str, reason: str = "") -> None:
        self.variable = variable
        msg = f"Cannot determine the kind of variable {variable!r}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
