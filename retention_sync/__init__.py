"""Integration synchronization engine for the customer retention platform."""

__version__ = "1.0.0"
