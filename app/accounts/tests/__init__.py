"""
Tests for the accounts app.

Usage:
    pytest accounts/tests/
"""
