"""localctx exception hierarchy."""


class LocalCtxError(Exception):
    """Base exception for all localctx errors."""


class ConfigError(LocalCtxError):
    """Invalid or missing configuration."""


class EmbeddingError(LocalCtxError):
    """Failed to generate embeddings."""


class IndexStoreError(LocalCtxError):
    """Index snapshot could not be written."""


class SchedulerError(LocalCtxError):
    """Change scheduler used in an invalid state."""
