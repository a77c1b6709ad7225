"""
Core package for shared utilities.

Configuration, structured logging, security helpers and the error taxonomy
shared by every service and router of the marketplace backend.
"""
