"""Proxy core: configuration, shared types, errors and request coalescing."""
