"""
Unit tests for the response normalizer.
"""

from unittest.mock import MagicMock

import pytest

from service_datasource.app.normalization import ResponseNormalizer
from service_datasource.app.query import PagedResult, QueryState


class TestResponseNormalizer:
    """Test cases for ResponseNormalizer."""

    @pytest.fixture
    def normalizer(self):
        normalizer = ResponseNormalizer()
        normalizer.logger = MagicMock()
        return normalizer

    @pytest.fixture
    def posts(self):
        return [{"id": index + 1, "title": f"post {index + 1}"} for index in range(25)]

    def test_bare_array_is_sliced(self, normalizer, posts):
        normalized = normalizer.normalize(posts, QueryState(page=1, size=10))

        assert not normalized.malformed
        assert [row["title"] for row in normalized.result.rows] == [f"post {n}" for n in range(11, 21)]
        assert normalized.result.total == 25
        assert normalized.result.total_pages == 3

    def test_natural_ids_are_stringified(self, normalizer, posts):
        result = normalizer.normalize(posts, QueryState(size=2)).result
        assert [row["id"] for row in result.rows] == ["1", "2"]

    def test_synthetic_ids_use_absolute_position(self, normalizer):
        items = [{"name": f"country {index}"} for index in range(30)]
        result = normalizer.normalize(items, QueryState(page=2, size=10)).result

        assert result.rows[0]["id"] == "row-20"
        assert result.rows[-1]["id"] == "row-29"

    def test_non_mapping_items_are_wrapped(self, normalizer):
        result = normalizer.normalize(["a", "b"], QueryState()).result
        assert result.rows == [{"id": "row-0", "value": "a"}, {"id": "row-1", "value": "b"}]

    def test_alternate_id_fields(self):
        normalizer = ResponseNormalizer(id_fields=("id", "cca3"))
        result = normalizer.normalize([{"cca3": "ARM", "name": "Armenia"}], QueryState()).result
        assert result.rows == [{"id": "ARM", "cca3": "ARM", "name": "Armenia"}]

    def test_out_of_range_page_on_bare_array(self, normalizer, posts):
        result = normalizer.normalize(posts, QueryState(page=9, size=10)).result
        assert result.rows == []
        assert result.total == 25

    def test_envelope_passes_through(self, normalizer):
        payload = {"data": [{"id": "1", "name": "Test"}], "total": 1}
        result = normalizer.normalize(payload, QueryState()).result

        assert result == PagedResult(rows=[{"id": "1", "name": "Test"}], total=1, page=0, size=10, total_pages=1)

    def test_envelope_values_take_precedence(self, normalizer):
        payload = {"data": [{"id": "x"}], "total": 41, "page": 4, "size": 10, "totalPages": 5}
        result = normalizer.normalize(payload, QueryState(page=0, size=20)).result

        assert (result.page, result.size, result.total_pages) == (4, 10, 5)

    def test_envelope_missing_pagination_uses_request(self, normalizer):
        payload = {"data": [{"id": "x"}] * 0, "total": 41}
        result = normalizer.normalize(payload, QueryState(page=2, size=20)).result

        assert (result.page, result.size, result.total_pages) == (2, 20, 3)

    def test_envelope_synthetic_ids(self, normalizer):
        payload = {"data": [{"name": "a"}, {"name": "b"}], "total": 12}
        result = normalizer.normalize(payload, QueryState(page=1, size=10)).result
        assert [row["id"] for row in result.rows] == ["row-10", "row-11"]

    def test_envelope_in_client_mode_is_sliced(self, normalizer, posts):
        payload = {"data": posts, "total": 25}
        result = normalizer.normalize(payload, QueryState(page=2, size=10), client_side=True).result

        assert len(result.rows) == 5
        assert result.total == 25

    def test_empty_object_is_malformed(self, normalizer):
        """Scenario D: {} normalizes to an empty page plus a warning."""
        normalized = normalizer.normalize({}, QueryState())

        assert normalized.malformed
        assert normalized.result.rows == []
        assert normalized.result.total == 0
        assert normalized.result.total_pages == 0
        normalizer.logger.warning.assert_called_once()
        assert normalizer.logger.warning.call_args[0][0] == "Unexpected API response format"

    @pytest.mark.parametrize("payload", [
        None,
        "rows",
        42,
        {"data": [], "total": "3"},
        {"data": {"id": "1"}, "total": 1},
        {"data": [], "total": -1},
        {"items": [], "count": 0},
    ])
    def test_other_shapes_are_malformed(self, normalizer, payload):
        normalized = normalizer.normalize(payload, QueryState(page=3, size=5))

        assert normalized.malformed
        assert normalized.result == PagedResult(rows=[], total=0, page=3, size=5, total_pages=0)

    def test_extract_rows_from_array(self, normalizer):
        rows = normalizer.extract_rows([{"name": "a"}, {"id": 7, "name": "b"}])
        assert rows == [{"id": "row-0", "name": "a"}, {"id": "7", "name": "b"}]

    def test_extract_rows_from_envelope(self, normalizer):
        rows = normalizer.extract_rows({"data": [{"id": "1"}], "total": 1})
        assert rows == [{"id": "1"}]

    def test_extract_rows_malformed(self, normalizer):
        assert normalizer.extract_rows({"oops": True}) is None
        normalizer.logger.warning.assert_called_once()
