"""Import documentation from GitHub repositories into a local content tree."""

__version__ = "0.1.0"
