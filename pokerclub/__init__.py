"""Club tournament lifecycle, seating and points engine."""

__version__ = "0.1.0"
