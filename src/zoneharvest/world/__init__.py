"""Reference world implementations."""
