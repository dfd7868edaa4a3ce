"""Approval workflow engine for HR records."""

__version__ = "0.1.0"
