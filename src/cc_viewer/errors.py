"""Custom exceptions for cc-viewer."""


class CCViewerError(Exception):
    """Base exception for cc-viewer errors."""


class ConfigError(CCViewerError):
    """Raised when environment configuration is invalid."""


class ConversationNotFoundError(CCViewerError):
    """Raised when a conversation file is missing or unreadable."""

    def __init__(self, project_id: str, conversation_id: str) -> None:
        super().__init__(f"Conversation not found: {project_id}/{conversation_id}")
        self.project_id = project_id
        self.conversation_id = conversation_id


class EmptyConversationError(CCViewerError):
    """Raised when a log yields no messages and at least one parse error."""


class IndexStoreError(CCViewerError):
    """Base exception for search index failures."""


class IndexInitError(IndexStoreError):
    """Raised when the search index could not be opened or created."""


class IndexClosedError(IndexStoreError):
    """Raised when a closed search index is used."""
