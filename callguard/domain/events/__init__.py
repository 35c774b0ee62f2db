"""Domain Event definitions.

Represents significant occurrences within the gateway that other parts
of the system might react to (logging, metrics, diagnostics).
"""
