"""Prompt-injection defenses for AI-assisted repository curation workflows.

Host workflow scripts call :func:`curator_guard.logging.setup_logging` once at
startup before using the rest of the package.
"""

__version__ = "0.1.0"
