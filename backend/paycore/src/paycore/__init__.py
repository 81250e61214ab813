"""Booking payment core: validation, reconciliation and gateway orchestration."""

__version__ = "0.1.0"
