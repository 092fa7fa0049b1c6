"""System package manager adapters."""
