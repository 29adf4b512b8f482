"""AWS provider access."""
