"""User-facing surfaces (CLI)."""
