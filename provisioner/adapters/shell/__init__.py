"""Shell-level adapters and the shared subprocess runner."""
