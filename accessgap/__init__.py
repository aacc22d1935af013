"""accessgap: offboarding lingering-access discovery and remediation."""

__version__ = "0.1.0"
