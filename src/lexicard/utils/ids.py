"""UUID generation utilities for lexicard."""

import uuid


def generate_task_id() -> str:
    """
    Generate a random identifier for a background task.

    Returns:
        UUID v4 string in standard format

    Example:
        >>> generate_task_id()
        "f47ac10b-58cc-4372-a567-0e02b2c3d479"
    """
    return str(uuid.uuid4())


def generate_word_id() -> str:
    """Generate a random identifier for a stored word."""
    return uuid.uuid4().hex
