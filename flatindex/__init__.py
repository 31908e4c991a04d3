"""flatindex: character-level full-text index synchronized with a document store."""

__version__ = "1.0.0"
