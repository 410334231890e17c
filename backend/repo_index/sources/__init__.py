"""Repository sources (GitHub REST API)."""
