"""Console presentation built on rich."""
