"""Unit tests for source article and search request models."""

from datetime import datetime, timedelta, timezone

from pydantic import ValidationError
import pytest

from research_search.domain.model import SourceArticle, ensure_aware
from research_search.domain.search import DateRange, QueryRequest, SearchFilters, SearchResponse


NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.unit
class TestSourceArticle:
    def test_parses_camel_case_record(self):
        article = SourceArticle.model_validate(
            {
                "id": "42",
                "title": "Grain markets",
                "publishedAt": "2025-05-01T00:00:00",
                "division": {"id": "d1", "name": "Economics"},
                "authors": [{"id": "a1", "name": "Ada"}, {"id": "a2", "name": ""}],
                "unknownColumn": "ignored",
            }
        )

        assert article.published_at == datetime(2025, 5, 1, tzinfo=timezone.utc)
        assert article.author_ids == ("a1", "a2")
        assert article.author_names == ("Ada",)

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ('["Trade", "Food"]', ("Trade", "Food")),
            ("trade, food ,", ("trade", "food")),
            (["Trade", "trade", " Food "], ("Trade", "Food")),
            ('"single"', ("single",)),
            (None, ()),
            ("", ()),
        ],
    )
    def test_tags_are_parsed_once_into_strings(self, raw, expected):
        assert SourceArticle(id="1", tags=raw).tags == expected

    def test_requires_id(self):
        with pytest.raises(ValidationError):
            SourceArticle(id="")

    def test_eligibility(self):
        published = SourceArticle(id="1", published_at=NOW - timedelta(days=1))

        assert published.is_eligible(NOW)
        assert not published.model_copy(update={"status": "DRAFT"}).is_eligible(NOW)
        assert not published.model_copy(update={"deleted": True}).is_eligible(NOW)
        assert not published.model_copy(update={"published_at": NOW + timedelta(hours=1)}).is_eligible(NOW)
        assert not SourceArticle(id="2").is_eligible(NOW)

    def test_status_is_case_insensitive(self):
        assert SourceArticle(id="1", status="published", published_at=NOW).is_eligible(NOW)

    def test_ensure_aware(self):
        assert ensure_aware(datetime(2025, 1, 1)).tzinfo is timezone.utc
        assert ensure_aware(None) is None


@pytest.mark.unit
class TestSearchModels:
    def test_query_is_stripped(self):
        assert QueryRequest(query="  trade  ").query == "trade"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"query": "   "},
            {"query": "trade", "limit": 0},
            {"query": "trade", "limit": 101},
            {"query": "trade", "offset": -1},
        ],
    )
    def test_invalid_requests(self, kwargs):
        with pytest.raises(ValidationError):
            QueryRequest(**kwargs)

    def test_filters_accept_camel_case_and_lowercase_tags(self):
        filters = SearchFilters.model_validate(
            {"divisions": ["d1"], "tags": ["Trade", " "], "dateRange": {"start": "2025-01-01T00:00:00Z"}}
        )

        assert filters.divisions == frozenset({"d1"})
        assert filters.tags == frozenset({"trade"})
        assert filters.date_range is not None
        assert not filters.is_empty
        assert SearchFilters().is_empty

    def test_date_range_validation_and_containment(self):
        with pytest.raises(ValidationError, match="start must not be after"):
            DateRange(start=NOW, end=NOW - timedelta(days=1))

        window = DateRange(start=NOW - timedelta(days=7), end=NOW)
        assert window.contains(NOW)
        assert window.contains(NOW - timedelta(days=7))
        assert not window.contains(NOW + timedelta(seconds=1))
        assert not window.contains(None)
        assert DateRange().contains(None)
        assert DateRange(start=datetime(2025, 1, 1)).start.tzinfo is timezone.utc

    def test_response_serializes_camel_case(self):
        data = SearchResponse.empty("trade", warning="not built").model_dump(by_alias=True)
        assert data == {"results": [], "total": 0, "hasMore": False, "query": "trade", "warning": "not built"}
