"""Link preview metadata and card rendering with an on-disk cache."""

__version__ = "0.2.0"
