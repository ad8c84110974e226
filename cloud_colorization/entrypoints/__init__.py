"""Entrypoints for cloud colorization."""
