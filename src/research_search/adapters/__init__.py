"""Adapters to external collaborators (the article data source)."""
