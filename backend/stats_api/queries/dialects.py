"""Per-dialect SQL expression templates.

The builder composes every query from these renderers, so a query shape is
written once and each backend only decides how to spell JSON access, array
unnesting, flag tests, date truncation and substring matching.

SQLite reads the embedded JSON with ``json_extract`` and unnests it with the
implicit table-valued ``json_each``. PostgreSQL uses the ``->``/``->>``
operators with set-returning ``jsonb_each``/``jsonb_array_elements``. Both
unnest the members of an object *or* an array and yield nothing for scalars
and nulls, so the row sets match.
"""

from __future__ import annotations

from stats_api.db.backend import Dialect


def _json_path(keys: tuple[str, ...]) -> str:
    return "$." + ".".join(keys)


class SqlDialect:
    dialect: Dialect
    binary_collation: str = ""

    def literal(self, value: str) -> str:
        # Colons are escaped so text() never reads them as bind parameters.
        escaped = value.replace("'", "''").replace(":", "\\:")
        return f"'{escaped}'"

    def document(self, column: str) -> str:
        """The JSON document stored in ``column``, ready for path access."""
        return column

    def json_text(self, expr: str, *keys: str) -> str:
        raise NotImplementedError

    def join_members(self, alias: str, expr: str, *keys: str) -> str:
        """Join clause exposing each member of the container at ``keys`` as ``alias.value``."""
        raise NotImplementedError

    def json_flag(self, expr: str, key: str) -> str:
        """Predicate: the embedded value at ``key`` is true or the number 1."""
        raise NotImplementedError

    def epoch_date(self, column: str) -> str:
        """UTC calendar date of an epoch-seconds column."""
        raise NotImplementedError

    def contains(self, expr: str, needle: str) -> str:
        """Case-sensitive substring test against a static needle."""
        raise NotImplementedError


class SQLiteDialect(SqlDialect):
    dialect = Dialect.ROW_STORE
    binary_collation = "COLLATE BINARY"

    def json_text(self, expr: str, *keys: str) -> str:
        return f"json_extract({expr}, {self.literal(_json_path(keys))})"

    def join_members(self, alias: str, expr: str, *keys: str) -> str:
        path = self.literal(_json_path(keys))
        container = (
            f"CASE WHEN json_type({expr}, {path}) IN ('object', 'array') "
            f"THEN json_extract({expr}, {path}) END"
        )
        return f",\n     json_each({container}) AS {alias}"

    def json_flag(self, expr: str, key: str) -> str:
        return f"{self.json_text(expr, key)} = 1"

    def epoch_date(self, column: str) -> str:
        return f"date({column}, 'unixepoch')"

    def contains(self, expr: str, needle: str) -> str:
        return f"instr({expr}, {self.literal(needle)}) > 0"


class PostgresDialect(SqlDialect):
    dialect = Dialect.DOCUMENT_RELATIONAL
    binary_collation = 'COLLATE "C"'

    def document(self, column: str) -> str:
        # json and jsonb columns both end up as jsonb
        return f"CAST({column} AS jsonb)"

    def _json_value(self, expr: str, keys: tuple[str, ...]) -> str:
        return expr + "".join(f"->{self.literal(key)}" for key in keys)

    def json_text(self, expr: str, *keys: str) -> str:
        *parents, last = keys
        return f"{self._json_value(expr, tuple(parents))}->>{self.literal(last)}"

    def join_members(self, alias: str, expr: str, *keys: str) -> str:
        container = self._json_value(expr, keys)
        return (
            "\n     CROSS JOIN LATERAL (\n"
            f"         SELECT obj.value FROM jsonb_each("
            f"CASE WHEN jsonb_typeof({container}) = 'object' THEN {container} END) AS obj(key, value)\n"
            "         UNION ALL\n"
            f"         SELECT arr.value FROM jsonb_array_elements("
            f"CASE WHEN jsonb_typeof({container}) = 'array' THEN {container} END) AS arr(value)\n"
            f"     ) AS {alias}"
        )

    def json_flag(self, expr: str, key: str) -> str:
        # No implicit JSON -> number coercion here, so cast per JSON type.
        value = self._json_value(expr, (key,))
        text_value = self.json_text(expr, key)
        return (
            f"CASE jsonb_typeof({value}) "
            f"WHEN 'boolean' THEN CAST({text_value} AS boolean) "
            f"WHEN 'number' THEN CAST({text_value} AS numeric) = 1 "
            "ELSE FALSE END"
        )

    def epoch_date(self, column: str) -> str:
        return f"CAST(to_timestamp({column}) AT TIME ZONE 'UTC' AS date)"

    def contains(self, expr: str, needle: str) -> str:
        return f"strpos({expr}, {self.literal(needle)}) > 0"


_DIALECTS: dict[Dialect, SqlDialect] = {
    Dialect.ROW_STORE: SQLiteDialect(),
    Dialect.DOCUMENT_RELATIONAL: PostgresDialect(),
}


def templates_for(dialect: Dialect) -> SqlDialect:
    return _DIALECTS[dialect]
