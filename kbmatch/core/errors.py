"""
Error taxonomy for knowledge-base loading, embedding and caching.
"""


class KBMatchError(Exception):
    """Base exception for kbmatch operations."""
    pass


class ModelUnavailableError(KBMatchError):
    """Embedding provider used before its model finished loading."""
    pass


class KnowledgeBaseError(KBMatchError):
    """Knowledge base could not be read or contains no usable entries."""
    pass


class CacheCorruptError(KBMatchError):
    """Persisted cache record cannot be parsed or has the wrong shape."""
    pass


class CacheStaleError(KBMatchError):
    """Persisted cache record does not describe the current knowledge base."""
    pass


class ConfigError(KBMatchError):
    """Configuration data (such as the category keyword table) is missing or invalid."""
    pass
