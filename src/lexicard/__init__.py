"""lexicard: background word enrichment for a vocabulary-learning app."""

__version__ = "0.1.0"
