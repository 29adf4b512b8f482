"""Tricks conserving individual AWS resource families."""
