"""Custom exceptions for backlogctx."""


class BacklogContextError(Exception):
    """Base exception for all backlogctx errors."""


class ConfigError(BacklogContextError):
    """Configuration-related errors."""


class SearchIndexError(BacklogContextError):
    """Retrieval index errors."""


class BacklogStoreError(BacklogContextError):
    """Errors reading the backlog from disk."""


class CollaboratorError(BacklogContextError):
    """Raised when a host-supplied collaborator violates its contract."""

    def __init__(self, collaborator: str, detail: str):
        super().__init__(f"Collaborator '{collaborator}' violated its contract: {detail}")
        self.collaborator = collaborator
