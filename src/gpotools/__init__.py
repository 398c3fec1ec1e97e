"""GPO registry.pol decoding and ADMX template matching for migrations."""

__version__ = "0.1.0"
