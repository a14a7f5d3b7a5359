"""HealthGuard: PDF claim intake, fraud classification, and claim review."""

__version__ = "0.1.0"
