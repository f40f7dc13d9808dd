"""
Pendulum SDK Test Suite.

This package contains:
- unit/: Unit tests (fake connections, no network)
- integration/: REST clients against a mocked HTTP transport
"""
