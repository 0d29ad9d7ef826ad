"""Inline batch sync: two-phase fetch/process endpoints with a client-side driver."""

__version__ = "1.0.0"
