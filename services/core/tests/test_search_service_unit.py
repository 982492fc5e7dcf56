"""Unit tests for SearchService.

Tests cover:
1. Owner scoping of card searches
2. Query compilation per mode, including empty queries
3. Request validation: pagination, length, sort, filters, fields
4. Pagination metadata
5. Highlights and matched fields
6. Suggestions
7. Health and info
"""

import pytest

from cardsearch_core.domain.exceptions import SearchUnavailableError, SearchValidationError
from cardsearch_core.domain.query.sanitize import MAX_QUERY_LENGTH
from cardsearch_core.domain.schemas.search import (
    AdvancedQuery,
    DocumentType,
    FilterOperator,
    SearchFilter,
    SearchMode,
    SearchRequest,
    SortDirection,
    SortSpec,
)
from cardsearch_core.domain.services.documents import card_to_document, company_to_document
from cardsearch_core.domain.services.search import SearchService


@pytest.fixture
def service(fake_index):
    return SearchService(index=fake_index)


@pytest.fixture
def seeded_index(fake_index, make_card, make_company):
    """Index with three cards for user-1, one for user-2, and two companies."""
    for i in range(3):
        document = card_to_document(make_card(card_id=f"c{i}", name=f"Person {i}"))
        fake_index.documents[("card", document.id)] = document
    other = card_to_document(make_card(card_id="other", owner_id="user-2"))
    fake_index.documents[("card", other.id)] = other
    for i in range(2):
        document = company_to_document(make_company(company_id=f"co{i}"))
        fake_index.documents[("company", document.id)] = document
    return fake_index


# =============================================================================
# OWNER SCOPING TESTS
# =============================================================================


class TestOwnerScoping:
    """Card searches only ever see the caller's cards."""

    def test_card_search_requires_owner(self, service):
        with pytest.raises(SearchValidationError) as exc_info:
            service.search(SearchRequest(raw_query="jane"))

        assert exc_info.value.code == "OWNER_REQUIRED"

    def test_owner_filter_injected(self, service, seeded_index):
        result = service.search(SearchRequest(raw_query="person"), owner_id="user-1")

        assert result.meta.total_matches == 3
        assert all(item.entity.owner_id == "user-1" for item in result.items)
        owner_filters = [f for f in seeded_index.queries[0]["filters"] if f.field == "owner_id"]
        assert len(owner_filters) == 1
        assert owner_filters[0].value == "user-1"

    def test_caller_owner_filter_is_replaced(self, service, seeded_index):
        request = SearchRequest(
            raw_query="person",
            filters=[SearchFilter(field="userId", value="user-2")],
        )

        result = service.search(request, owner_id="user-1")

        assert {item.entity.id for item in result.items} == {"c0", "c1", "c2"}
        owner_values = [
            f.value for f in seeded_index.queries[0]["filters"] if f.field == "owner_id"
        ]
        assert owner_values == ["user-1"]

    def test_company_search_needs_no_owner(self, service, seeded_index):
        result = service.search(
            SearchRequest(raw_query="acme", index=DocumentType.COMPANY)
        )

        assert result.meta.total_matches == 2
        assert seeded_index.queries[0]["filters"] == []


# =============================================================================
# COMPILATION TESTS
# =============================================================================


class TestCompilation:
    """Tests for how requests reach the backend."""

    def test_boolean_mode(self, service, fake_index):
        result = service.search(
            SearchRequest(raw_query="software AND NOT intern", mode=SearchMode.BOOLEAN),
            owner_id="user-1",
        )

        assert fake_index.queries[0]["query_expr"] == "software & !intern"
        assert result.meta.processed_query == "software & !intern"
        assert result.meta.mode == SearchMode.BOOLEAN

    def test_proximity_distance(self, service, fake_index):
        service.search(
            SearchRequest(raw_query="machine learning", mode=SearchMode.PROXIMITY, distance=2),
            owner_id="user-1",
        )

        assert fake_index.queries[0]["query_expr"] == "machine <2> learning"

    def test_advanced_mode_with_structured_query(self, service, fake_index):
        request = SearchRequest(
            mode=SearchMode.ADVANCED,
            advanced=AdvancedQuery(must_have=["cto"], must_not_have=["intern"]),
        )

        service.search(request, owner_id="user-1")

        assert fake_index.queries[0]["query_expr"] == "(cto) & !(intern)"

    def test_advanced_mode_without_body_uses_free_text(self, service, fake_index):
        service.search(
            SearchRequest(raw_query="acme corp", mode=SearchMode.ADVANCED),
            owner_id="user-1",
        )

        assert fake_index.queries[0]["query_expr"] == "acme & corp"

    def test_empty_query_skips_backend(self, service, fake_index):
        result = service.search(SearchRequest(raw_query="   "), owner_id="user-1")

        assert fake_index.queries == []
        assert result.items == []
        assert result.meta.total_matches == 0
        assert result.meta.processed_query == ""
        assert result.meta.has_more is False

    def test_complexity_reported(self, service):
        result = service.search(
            SearchRequest(raw_query="(a OR b)", mode=SearchMode.BOOLEAN), owner_id="user-1"
        )

        assert 0.0 < result.meta.complexity <= 1.0

    def test_backend_errors_propagate(self, service, fake_index):
        fake_index.search_error = SearchUnavailableError("down")

        with pytest.raises(SearchUnavailableError):
            service.search(SearchRequest(raw_query="jane"), owner_id="user-1")


# =============================================================================
# VALIDATION TESTS
# =============================================================================


class TestValidation:
    """Tests for request validation."""

    @pytest.mark.parametrize("limit", [0, -1, 101])
    def test_limit_out_of_range(self, service, limit):
        with pytest.raises(SearchValidationError):
            service.search(SearchRequest(raw_query="a", limit=limit), owner_id="user-1")

    def test_negative_offset(self, service):
        with pytest.raises(SearchValidationError):
            service.search(SearchRequest(raw_query="a", offset=-5), owner_id="user-1")

    @pytest.mark.parametrize("distance", [-1, 16385, 20000])
    def test_distance_out_of_range(self, service, fake_index, distance):
        request = SearchRequest(
            raw_query="machine learning", mode=SearchMode.PROXIMITY, distance=distance
        )

        with pytest.raises(SearchValidationError) as exc_info:
            service.search(request, owner_id="user-1")

        assert exc_info.value.code == "INVALID_DISTANCE"
        assert fake_index.queries == []

    def test_max_distance_accepted(self, service, fake_index):
        service.search(
            SearchRequest(raw_query="machine learning", mode=SearchMode.PROXIMITY, distance=16384),
            owner_id="user-1",
        )

        assert fake_index.queries[0]["query_expr"] == "machine <16384> learning"

    def test_query_too_long(self, service):
        with pytest.raises(SearchValidationError) as exc_info:
            service.search(
                SearchRequest(raw_query="a" * (MAX_QUERY_LENGTH + 1)), owner_id="user-1"
            )

        assert exc_info.value.code == "QUERY_TOO_LONG"

    def test_advanced_entry_too_long(self, service):
        request = SearchRequest(
            mode=SearchMode.ADVANCED,
            advanced=AdvancedQuery(must_have=["x" * (MAX_QUERY_LENGTH + 1)]),
        )

        with pytest.raises(SearchValidationError):
            service.search(request, owner_id="user-1")

    def test_unknown_index(self, service):
        with pytest.raises(SearchValidationError) as exc_info:
            service.search(SearchRequest(raw_query="a", index="person"), owner_id="user-1")

        assert exc_info.value.code == "INVALID_INDEX"

    def test_unknown_sort_field(self, service):
        request = SearchRequest(raw_query="a", sort=[SortSpec(field="salary")])

        with pytest.raises(SearchValidationError) as exc_info:
            service.search(request, owner_id="user-1")

        assert exc_info.value.code == "INVALID_SORT"

    def test_bad_sort_direction(self, service):
        request = SearchRequest(raw_query="a", sort=[SortSpec(field="title", direction="up")])

        with pytest.raises(SearchValidationError):
            service.search(request, owner_id="user-1")

    def test_sort_names_normalized(self, service, fake_index):
        request = SearchRequest(
            raw_query="a",
            sort=[SortSpec(field="createdAt", direction="asc")],
        )

        service.search(request, owner_id="user-1")

        sort = fake_index.queries[0]["sort"]
        assert sort[0].field == "created_at"
        assert sort[0].direction == SortDirection.ASC

    def test_unknown_filter_field(self, service):
        request = SearchRequest(raw_query="a", filters=[SearchFilter(field="salary", value=1)])

        with pytest.raises(SearchValidationError) as exc_info:
            service.search(request, owner_id="user-1")

        assert exc_info.value.code == "INVALID_FILTER"

    def test_bad_metadata_key(self, service):
        request = SearchRequest(
            raw_query="a",
            filters=[SearchFilter(field="metadata.x;drop", value=1)],
        )

        with pytest.raises(SearchValidationError):
            service.search(request, owner_id="user-1")

    def test_in_filter_needs_list(self, service):
        request = SearchRequest(
            raw_query="a",
            filters=[SearchFilter(field="metadata.tags", value="vip", operator="in")],
        )

        with pytest.raises(SearchValidationError):
            service.search(request, owner_id="user-1")

    def test_metadata_filter_passed_through(self, service, fake_index):
        request = SearchRequest(
            raw_query="a",
            filters=[SearchFilter(field="metadata.enriched", value=True)],
        )

        service.search(request, owner_id="user-1")

        filters = fake_index.queries[0]["filters"]
        assert filters[0].field == "metadata.enriched"
        assert filters[0].operator == FilterOperator.EQ

    def test_unknown_search_field(self, service):
        with pytest.raises(SearchValidationError) as exc_info:
            service.search(SearchRequest(raw_query="a", fields=["email"]), owner_id="user-1")

        assert exc_info.value.code == "INVALID_FIELDS"

    def test_validation_runs_before_backend(self, service, fake_index):
        with pytest.raises(SearchValidationError):
            service.search(SearchRequest(raw_query="a", limit=0), owner_id="user-1")

        assert fake_index.queries == []


# =============================================================================
# PAGINATION TESTS
# =============================================================================


class TestPagination:
    """Tests for pagination metadata."""

    def test_first_page_has_next(self, service, seeded_index):
        result = service.search(
            SearchRequest(raw_query="person", limit=2, offset=0), owner_id="user-1"
        )

        assert len(result.items) == 2
        assert result.meta.has_more is True
        assert result.pagination.page == 1
        assert result.pagination.total_pages == 2
        assert result.pagination.has_next is True
        assert result.pagination.has_previous is False

    def test_last_page(self, service, seeded_index):
        result = service.search(
            SearchRequest(raw_query="person", limit=2, offset=2), owner_id="user-1"
        )

        assert len(result.items) == 1
        assert result.meta.has_more is False
        assert result.pagination.page == 2
        assert result.pagination.has_previous is True

    def test_to_dict_shape(self, service, seeded_index):
        result = service.search(SearchRequest(raw_query="person"), owner_id="user-1").to_dict()

        assert set(result) == {"items", "meta", "pagination"}
        assert result["meta"]["mode"] == "simple"
        assert result["items"][0]["entity"]["type"] == "card"
        assert "highlights" not in result["items"][0]


# =============================================================================
# HIGHLIGHT TESTS
# =============================================================================


class TestHighlights:
    """Tests for highlighted snippets and matched fields."""

    def test_highlights_built_from_card_fields(self, service, seeded_index):
        result = service.search(
            SearchRequest(raw_query="person", highlight=True, limit=1), owner_id="user-1"
        )

        texts, query_expr = seeded_index.headline_calls[0]
        assert query_expr == "person"
        assert texts == ["Person 0 Software Engineer Acme Corp " + result.items[0].entity.content]
        segments = result.items[0].highlights
        assert segments[0].highlighted is True
        assert segments[0].text == "Person"

    def test_highlights_for_companies(self, service, seeded_index):
        service.search(
            SearchRequest(raw_query="acme", index=DocumentType.COMPANY, highlight=True, limit=1)
        )

        texts, _ = seeded_index.headline_calls[0]
        assert texts == ["Acme Corp Manufacturing Makers of fine anvils"]

    def test_no_highlights_unless_requested(self, service, seeded_index):
        result = service.search(SearchRequest(raw_query="person"), owner_id="user-1")

        assert seeded_index.headline_calls == []
        assert all(item.highlights is None for item in result.items)

    def test_matched_fields_only_with_field_restriction(self, service, seeded_index):
        plain = service.search(SearchRequest(raw_query="person"), owner_id="user-1")
        restricted = service.search(
            SearchRequest(raw_query="person", fields=["title", "title"]), owner_id="user-1"
        )

        assert plain.items[0].matched_fields is None
        assert restricted.items[0].matched_fields == ["title"]
        assert seeded_index.queries[1]["fields"] == ["title"]


# =============================================================================
# SUGGEST TESTS
# =============================================================================


class TestSuggest:
    """Tests for suggest."""

    def test_returns_distinct_titles(self, service, seeded_index):
        suggestions = service.suggest("ac", index=DocumentType.COMPANY)

        assert suggestions == ["Acme Corp"]
        assert seeded_index.queries[0]["query_expr"] == "ac:*"

    def test_card_suggestions_scoped_to_owner(self, service, seeded_index):
        suggestions = service.suggest("pe", owner_id="user-1")

        assert suggestions == ["Person 0", "Person 1", "Person 2"]

    def test_card_suggestions_require_owner(self, service):
        with pytest.raises(SearchValidationError):
            service.suggest("pe")

    def test_short_prefix_returns_nothing(self, service, fake_index):
        assert service.suggest("p", owner_id="user-1") == []
        assert fake_index.queries == []

    @pytest.mark.parametrize("limit", [0, 21])
    def test_limit_bounds(self, service, limit):
        with pytest.raises(SearchValidationError):
            service.suggest("pe", owner_id="user-1", limit=limit)


# =============================================================================
# STATUS TESTS
# =============================================================================


class TestStatus:
    def test_health_reachable(self, service):
        assert service.health_check() == {
            "status": "healthy",
            "backend": "postgresql",
            "reachable": True,
        }

    def test_health_unreachable(self, service, fake_index):
        fake_index.reachable = False

        health = service.health_check()

        assert health["status"] == "unhealthy"
        assert health["reachable"] is False

    def test_index_info(self, service):
        assert service.get_index_info()["table"] == "search_documents"
