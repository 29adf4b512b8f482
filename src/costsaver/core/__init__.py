"""Conserve/restore engine: trick contract, registry, task tree and run manager."""
