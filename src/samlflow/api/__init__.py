"""HTTP layer for samlflow."""
