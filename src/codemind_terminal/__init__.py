"""Command resolution, risk classification and process supervision."""

__version__ = "0.1.0"
