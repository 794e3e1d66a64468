"""Autonomous deployment, verification and remediation pipeline."""

__all__ = ["__version__"]

__version__ = "0.4.0"
