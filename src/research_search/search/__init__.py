"""
In-memory article search engine.

This package provides a pure-Python search stack:
- analyzers: HTML stripping, tokenizers and filters (lowercase, stop words, min length)
- schema: Field definitions and fixed scoring weights
- index: Indexed documents, immutable snapshots and the swappable index handle
- indexer: Full builds and incremental refreshes from the article provider
- query: Weighted term scoring, filters, sorting, pagination
- snippet: Highlighted result excerpts
- suggest: Autocomplete and popular terms
- stats: Index health reporting
"""
