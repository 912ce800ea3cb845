import pytest

from stocktake.column_mapper.detector import UNKNOWN_ROLE, ColumnRoleDetector
from stocktake.errors import DetectionFailed

from conftest import STANDARD_HEADERS, STANDARD_MAP


@pytest.fixture
def detector():
    return ColumnRoleDetector()


def test_detects_standard_polish_layout(detector):
    samples = [[1, "RAW001", "Flour", 100, "kg"], [2, "RAW002", "Sugar", 25.5, "kg"]]
    result = detector.detect(STANDARD_HEADERS, samples)

    assert result.role_map == STANDARD_MAP
    assert result.confidence == pytest.approx(1.0)
    assert [a.role for a in result.assignments] == ["line_number", "item_id", "name", "quantity", "unit"]


def test_detects_english_headers_without_samples(detector):
    result = detector.detect(["Product Name", "Qty", "UOM"])
    assert result.role_map == {"name": 0, "quantity": 1, "unit": 2}


def test_numeric_content_breaks_header_tie(detector):
    """Two quantity-like headers: the column holding numbers wins."""
    headers = ["Name", "Count", "Stock", "Unit"]
    samples = [["Flour", "a", 5, "kg"], ["Sugar", "b", 7, "kg"]]
    result = detector.detect(headers, samples)
    assert result.role_map == {"name": 0, "quantity": 2, "unit": 3}


def test_detection_is_deterministic(detector):
    headers = ["Nazwa", "Ilość", "JM", "Kod"]
    samples = [["Flour", 3, "kg", "X1"]]
    first = detector.detect(headers, samples)
    second = detector.detect(headers, samples)
    assert first.to_dict() == second.to_dict()


def test_unrecognised_headers_fail_with_unknown_suggestions(detector):
    with pytest.raises(DetectionFailed) as exc_info:
        detector.detect(["Foo", "Bar", "Baz"])

    error = exc_info.value
    assert error.role_map == {}
    assert len(error.suggestions) == 3
    assert all(s.possible_roles == [UNKNOWN_ROLE] for s in error.suggestions)


def test_missing_unit_fails_with_partial_map(detector):
    with pytest.raises(DetectionFailed) as exc_info:
        detector.detect(["Nazwa", "Ilość"])

    error = exc_info.value
    assert error.role_map == {"name": 0, "quantity": 1}
    assert error.suggestions[0].possible_roles[0] == "name"
    assert "unit" not in error.role_map


def test_empty_headers_fail(detector):
    with pytest.raises(DetectionFailed):
        detector.detect([])


def test_one_column_per_role(detector):
    result = detector.detect(["Nazwa", "Nazwa towaru", "Ilość", "JMZ"])
    columns = list(result.role_map.values())
    assert len(columns) == len(set(columns))
    assert result.role_map["name"] == 0


def test_generic_column_names_still_get_suggestions(detector):
    with pytest.raises(DetectionFailed) as exc_info:
        detector.detect(["Col1", "Col2", "Col3"], [["a b c", "d e f", "g h i"]])
    assert exc_info.value.suggestions
    assert [s.column for s in exc_info.value.suggestions] == [0, 1, 2]
