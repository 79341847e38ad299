"""
Typed failures raised by the grounding engine's collaborators.
"""


class GroundingError(Exception):
    """Base class for grounding engine errors."""


class CollaboratorUnavailableError(GroundingError):
    """An external collaborator (data provider, generation service) failed."""

    def __init__(self, collaborator: str, detail: str = ""):
        self.collaborator = collaborator
        self.detail = detail
        message = f"{collaborator} unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class DataProviderError(CollaboratorUnavailableError):
    """Academic data lookups or chat history storage failed."""

    def __init__(self, detail: str = ""):
        super().__init__("academic data provider", detail)


class GenerationError(CollaboratorUnavailableError):
    """The language model could not be reached or returned an API error."""

    def __init__(self, detail: str = ""):
        super().__init__("generation service", detail)
