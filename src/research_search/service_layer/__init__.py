"""Service layer: the operation set consumed by the API boundary."""

from research_search.service_layer.search_service import SearchService


__all__ = ["SearchService"]
