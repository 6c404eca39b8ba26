"""Adapters connecting statsketch to storage backends."""
