"""Market data models, normalization, validation rules and a Yahoo Finance client."""

__version__ = "0.1.0"