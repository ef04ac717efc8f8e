"""Immutable music model, its parsers and the mutable working copy."""
