"""Solar UAV Conceptual Aircraft Design."""

__version__ = "0.1.0"
