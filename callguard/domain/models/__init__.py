"""Domain Models: value objects, call descriptions and the error taxonomy."""
