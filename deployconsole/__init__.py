"""Deploy Console — operator console for a remote deployment service."""

__version__ = "0.1.0"
