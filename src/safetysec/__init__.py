"""
SafetySec client core.

Account registration, sign-in and profile state for the monitor/protected
safety app.
"""

__version__ = "0.1.0"
