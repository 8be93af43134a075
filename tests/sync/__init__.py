"""Sync integration tests.

This package contains tests that run the real HTTP client against an
in-process fake backend:
- Remote client request/response handling
- Full sync round trips and conflict resolution
- Fast deletion markers across syncs
- Best-effort single-entity pushes
- Network failure and recovery
"""
