"""Parse per-process information from the Linux /proc filesystem."""

__version__ = "0.1.0"