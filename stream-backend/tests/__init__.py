"""
Tests Package - Stream Loader Unit Tests

Run from the repository root with: pytest
Shared fixtures live in tests/conftest.py.
"""
