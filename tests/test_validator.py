from stocktake.column_mapper.validator import MappingValidator

from conftest import STANDARD_HEADERS, STANDARD_MAP


def test_standard_map_is_valid():
    result = MappingValidator().validate(STANDARD_MAP, STANDARD_HEADERS)
    assert result.is_valid
    assert result.errors == []


def test_every_missing_role_is_reported():
    """Missing quantity and unit give exactly two errors."""
    result = MappingValidator().validate({"name": 0})
    assert not result.is_valid
    assert len(result.errors) == 2
    assert "Missing required role: quantity" in result.errors
    assert "Missing required role: unit" in result.errors


def test_out_of_bounds_index():
    result = MappingValidator().validate({"name": 0, "quantity": 1, "unit": 7}, ["a", "b", "c"])
    assert not result.is_valid
    assert any(e.startswith("Column index out of bounds for unit") for e in result.errors)


def test_bounds_not_checked_without_headers():
    assert MappingValidator().validate({"name": 0, "quantity": 1, "unit": 40}).is_valid


def test_negative_and_non_integer_indices():
    result = MappingValidator().validate({"name": -1, "quantity": "2", "unit": True})
    assert len(result.errors) == 3
    assert all(e.startswith("Invalid column index") for e in result.errors)


def test_duplicate_column_assignment():
    result = MappingValidator().validate({"name": 0, "quantity": 1, "unit": 1})
    assert result.errors == ["Duplicate column assignment: column 1 used by quantity, unit"]


def test_unknown_role():
    result = MappingValidator().validate({"name": 0, "quantity": 1, "unit": 2, "price": 3})
    assert result.errors == ["Unknown role: price"]
