"""Core domain: models, ports and the statistics engine."""
