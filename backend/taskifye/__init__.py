"""Taskifye backend: tenant integration credentials and CRM field mapping."""

__version__ = "0.1.0"
