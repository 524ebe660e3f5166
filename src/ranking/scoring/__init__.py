"""Pure scoring functions: no I/O, no shared state."""
