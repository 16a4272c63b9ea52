"""CLI module for meshgate."""
