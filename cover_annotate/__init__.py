"""Coverage export decoding and line annotation."""

__version__ = "0.1.0"
