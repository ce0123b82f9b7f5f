from datamodeler.graph.model import TableNode
from datamodeler.query.identifiers import escape, qualify, quote_literal


def test_escape_wraps_identifier_in_backticks() -> None:
    assert escape("orders") == "`orders`"


def test_escape_doubles_embedded_backticks() -> None:
    assert escape("weird`name") == "`weird``name`"


def test_qualify_splits_schema_path() -> None:
    table = TableNode(id="a", table_name="orders", schema_path="main.sales")

    assert qualify(table) == "`main`.`sales`.`orders`"


def test_qualify_without_schema_uses_table_name_only() -> None:
    assert qualify(TableNode(id="a", table_name="orders")) == "`orders`"


def test_qualify_skips_empty_schema_parts() -> None:
    table = TableNode(id="a", table_name="orders", schema_path="main..sales.")

    assert qualify(table) == "`main`.`sales`.`orders`"


def test_qualify_nameless_table_returns_placeholder() -> None:
    assert qualify(TableNode(id="a")) == "UNKNOWN_TABLE"
    assert qualify(None) == "UNKNOWN_TABLE"


def test_quote_literal_doubles_single_quotes() -> None:
    assert quote_literal("O'Brien") == "'O''Brien'"
