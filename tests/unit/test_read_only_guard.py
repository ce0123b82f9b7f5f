import pytest

from datamodeler.connectors.base import ensure_select_statement
from datamodeler.errors.connector_errors import QueryValidationError


@pytest.mark.parametrize(
    "sql",
    [
        "SELECT * FROM orders",
        "  with recent AS (SELECT 1) SELECT * FROM recent",
        "SELECT t1.`created_at`, t1.`updated_by` FROM `orders` AS t1",
        "SELECT * FROM t WHERE note = 'please delete me'",
        "-- drop table orders\nSELECT 1",
        "SELECT '--' AS marker, 'drop' AS word FROM t",
    ],
)
def test_read_only_statements_pass(sql: str) -> None:
    ensure_select_statement(sql)


@pytest.mark.parametrize(
    "sql",
    [
        "",
        "/* only a comment */",
        "DELETE FROM orders",
        "SELECT 1; DROP TABLE orders",
        "WITH x AS (SELECT 1) INSERT INTO t SELECT * FROM x",
        "SELECT '--' AS x FROM t; DROP TABLE t",
        "SELECT '/*' AS x FROM t; DELETE FROM t -- '*/'",
    ],
)
def test_mutating_or_empty_statements_are_rejected(sql: str) -> None:
    with pytest.raises(QueryValidationError):
        ensure_select_statement(sql)
