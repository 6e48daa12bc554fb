"""hostforge — host infrastructure orchestrator."""

__version__ = "0.1.0"
