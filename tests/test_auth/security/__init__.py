"""
Security tests for the bank authentication system.

These tests probe for information disclosure through timing, error codes
and logs, and for token confusion between access and refresh tokens.
"""
