import pytest

from datamodeler.graph.loader import DataModelError, dump_data_model, load_data_model, parse_filters
from datamodeler.graph.model import Aggregation, Cardinality, CompositeJoinKey, JoinType


def _payload(**overrides) -> dict:
    payload = {
        "id": "m1",
        "name": "Revenue",
        "groupId": "g1",
        "connectionId": "c1",
        "tables": [
            {
                "id": "a",
                "tableName": "customers",
                "schema": "main.crm",
                "selectedColumns": [{"name": "id"}, {"name": "amount", "aggregation": "sum"}],
                "x": None,
            },
            {"id": "b", "tableName": "orders", "schema": "main.sales"},
        ],
        "relationships": [
            {
                "id": "e1",
                "fromTableId": "a",
                "toTableId": "b",
                "fromColumn": "id",
                "toColumn": "customer_id",
                "joinType": "inner",
                "cardinality": "MANY_TO_MANY",
            }
        ],
        "filters": [{"tableId": "b", "column": "status", "operator": "EQ", "value": "paid"}],
        "isGroupByAll": True,
    }
    payload.update(overrides)
    return payload


def test_loads_camel_case_payload() -> None:
    model = load_data_model(_payload())

    assert model.id == "m1"
    assert model.group_id == "g1"
    assert model.tables[0].schema_path == "main.crm"
    assert model.tables[0].x == 0
    assert model.tables[0].selected_columns[1].aggregation == Aggregation.SUM
    assert model.edges[0].join_type == JoinType.INNER
    assert model.edges[0].cardinality == Cardinality.MANY_TO_MANY
    assert model.filters.conditions[0].value == "paid"
    assert model.is_group_by_all


def test_unknown_join_type_and_cardinality_use_defaults() -> None:
    payload = _payload()
    payload["relationships"][0].update(joinType="SIDEWAYS", cardinality=None)

    edge = load_data_model(payload).edges[0]

    assert edge.join_type == JoinType.LEFT
    assert edge.cardinality == Cardinality.ONE_TO_MANY


def test_editor_conditions_take_precedence_over_columns() -> None:
    payload = _payload()
    payload["relationships"][0]["conditions"] = [
        {"fromColumn": "tenant_id", "toColumn": "tenant_id"},
        {"fromColumn": "id", "toColumn": "customer_id"},
    ]

    key = load_data_model(payload).edges[0].key

    assert isinstance(key, CompositeJoinKey)
    assert len(key.pairs) == 2


def test_manual_filter_object_is_understood() -> None:
    filters = parse_filters({"isManual": True, "manualSql": "SELECT 1", "conditions": []})

    assert filters.manual_override == "SELECT 1"


def test_manual_filter_without_flag_is_not_an_override() -> None:
    assert parse_filters({"isManual": False, "manualSql": "SELECT 1"}).manual_override is None


def test_invalid_payload_raises_data_model_error() -> None:
    with pytest.raises(DataModelError):
        load_data_model("{not json")
    with pytest.raises(DataModelError):
        load_data_model(_payload(tables=[{"tableName": "missing id"}]))
    with pytest.raises(DataModelError):
        load_data_model(_payload(filters="status = 1"))


def test_dump_keeps_manual_filter_object() -> None:
    model = load_data_model(_payload(filters={"isManual": True, "manualSql": "SELECT 1"}))

    record = dump_data_model(model)

    assert record.filters["isManual"] is True
    assert record.filters["manualSql"] == "SELECT 1"


def test_dump_then_load_round_trips() -> None:
    model = load_data_model(_payload())

    assert load_data_model(dump_data_model(model)) == model


def test_half_edited_filters_load_with_blank_fields() -> None:
    model = load_data_model(
        _payload(
            filters=[
                {"tableId": None, "column": "status", "operator": "EQ", "value": "x"},
                {"tableId": "b", "operator": "EQ", "value": "x"},
                {"tableId": "b", "column": "status", "operator": "EQ", "value": "paid"},
            ]
        )
    )

    assert [(condition.table_id, condition.column) for condition in model.filters.conditions] == [
        ("", "status"),
        ("b", ""),
        ("b", "status"),
    ]


def test_incomplete_editor_conditions_fall_back_to_id_join() -> None:
    payload = _payload()
    payload["relationships"][0]["conditions"] = [
        {"fromColumn": "tenant_id", "toColumn": "tenant_id"},
        {"fromColumn": "id", "toColumn": None},
    ]

    key = load_data_model(payload).edges[0].key

    assert (key.from_column, key.to_column) == ("id", "id")
    assert key.decode_error.startswith("Join conditions are incomplete")
