"""openspec - spec-driven change proposal lifecycle."""

__version__ = "0.1.0"
