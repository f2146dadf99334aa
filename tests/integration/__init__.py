"""Integration tests for the flight claims services.

These tests wire the real SQLite store, filing state machine and refund
engine together and drive claims through realistic lifecycles.

Test categories:
- test_lifecycle.py: intake to filing, follow-up, rejection and refund
"""
