"""pour - a user-space package manager for prebuilt bottles."""

__version__ = "0.3.0"
