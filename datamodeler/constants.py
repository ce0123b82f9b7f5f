"""Graph defaults shared by the loader, compiler and validator."""

DEFAULT_JOIN_TYPE = "LEFT"
DEFAULT_CARDINALITY = "ONE_TO_MANY"
DEFAULT_JOIN_COLUMN = "id"

# Composite join keys are persisted inside the single-column `fromColumn` field.
COMPOSITE_KEY_PREFIX = "__JSON__:"
COMPOSITE_KEY_TO_COLUMN = "REQ_JSON_PARSING"

UNKNOWN_TABLE = "UNKNOWN_TABLE"
BASE_ALIAS_PREFIX = "t"
IDENTIFIER_QUOTE = "`"

GROUP_BY_ALL = "GROUP BY ALL"
