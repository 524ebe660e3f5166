"""Writer ranking service."""
