"""
Test suite for the bank authentication system.

- Functional tests for every interface and bundled backend
- Flow tests for login, authorize, refresh, logout and registration
- Security tests for timing, token separation and information disclosure
- Configuration and assembly tests
"""
