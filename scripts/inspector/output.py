"""
Console output for the inspector.

Warnings always go to stderr; verbose lines only when the owning
Inspector has logging enabled.
"""

import sys


def warn(message: str):
    """Print a warning to stderr."""
    print(f"Warning: {message}", file=sys.stderr)


def verbose(enabled: bool, message: str):
    """Print a diagnostic line to stderr if enabled."""
    if enabled:
        print(f"[Inspector] {message}", file=sys.stderr)
