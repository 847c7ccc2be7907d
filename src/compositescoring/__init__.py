"""Composite scoring and reconciliation engine for applicant assessments."""

__version__ = "0.1.0"
