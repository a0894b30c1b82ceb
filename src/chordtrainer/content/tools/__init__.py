"""Bundled tool binding tables."""
