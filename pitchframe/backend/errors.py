class EmptyInputError(ValueError):
    """Raised before scoring when the pitch text is empty or whitespace only."""


class ExternalServiceError(RuntimeError):
    """Raised when the optional scoring service cannot produce a usable analysis."""


class RenderError(ValueError):
    """Raised when a report is requested for a structurally invalid analysis."""


class InvalidStatusTransition(ValueError):
    pass
