"""Core discovery, reconciliation and remediation engine."""
