"""Offline-first data sync for a fasting tracker."""

__version__ = "0.1.0"
