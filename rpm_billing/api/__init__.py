"""REST API for billing reports."""
