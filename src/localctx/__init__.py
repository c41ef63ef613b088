"""localctx: incremental local code index with semantic retrieval."""

__version__ = "0.3.0"
