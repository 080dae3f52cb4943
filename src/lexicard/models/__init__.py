"""Pydantic data models for lexicard."""
