"""
Tests Package - Unit and Integration Tests

Test structure:
- tests/fixtures/ - payload builders and the scripted FakeSource
- tests/conftest.py - settings, SQLite and logging fixtures
- tests/test_*.py - one module per component; HTTP mocked with httpx.MockTransport
"""
