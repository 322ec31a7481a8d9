"""ReSet Toolkit - policy-gated Windows settings reset with backup and restore."""

__version__ = "0.1.0"
