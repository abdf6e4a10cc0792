"""Adapters for storage, caching and external collaborators."""
