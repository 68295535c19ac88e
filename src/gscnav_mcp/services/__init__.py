"""User settings and keyword classification."""
