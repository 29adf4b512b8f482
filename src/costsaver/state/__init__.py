"""Persisted state of conserve runs."""
