"""Configuration: tool settings and package recipes."""
