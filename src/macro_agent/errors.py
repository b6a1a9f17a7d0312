"""Exception hierarchy for the research agent."""


class ResearchAgentError(Exception):
    """Base class for research agent errors."""
    pass


class ConfigurationError(ResearchAgentError):
    """A required credential or setting is missing.

    Raised before a session's first turn; aborts the session.
    """
    pass


class CompletionServiceError(ResearchAgentError):
    """The completion service could not be reached or returned an error."""
    pass


class CollaboratorError(ResearchAgentError):
    """An external data or automation collaborator failed.

    Tools convert this into a descriptive text result; it never
    escapes a session.
    """
    pass
