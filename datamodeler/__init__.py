"""Visual data-model compiler and join cardinality validator."""

__version__ = "0.1.0"
