"""Exception and warning types raised by the flow-network tools."""

import warnings


class InvalidInputError(ValueError):
    """Raised when a tool is given bad parameters or mismatched surfaces.

    Always raised before any computation starts.
    """

    pass


class StructuralWarning(UserWarning):
    """Issued when the input surface has a structural defect.

    Interior pits, cells left unresolved after the frontier empties, and
    pointer cycles are reported this way. The partial result is still returned.
    """

    pass


def emit_structural_warning(message: str, collected: list, logger) -> None:
    """Log a StructuralWarning, issue it through `warnings`, and keep it for the result."""
    logger.warning(message)
    warnings.warn(message, StructuralWarning, stacklevel=3)
    collected.append(message)
