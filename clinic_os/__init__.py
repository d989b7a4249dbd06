"""Clinic OS - appointment booking, conflict detection and check-in tracking."""

__version__ = "0.1.0"
