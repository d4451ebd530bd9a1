"""Command implementations for the pour CLI."""
