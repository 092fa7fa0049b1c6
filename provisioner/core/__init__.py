"""Core domain: models, configuration, services, engine, use cases."""
