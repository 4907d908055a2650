"""Credential broker and protocol gateway for personal automation tools."""

__version__ = "0.1.0"
