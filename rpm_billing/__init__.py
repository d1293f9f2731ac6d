"""RPM billing eligibility engine."""

__version__ = "0.1.0"
