"""Core persistence layer."""
