"""Worker pool, metrics and load control."""
