"""
Result normalization (multidb/db/results.py).
"""

from types import SimpleNamespace

from multidb.db.results import (
    ConnectionStats,
    FieldInfo,
    QueryResult,
    from_mssql,
    from_mysql,
    from_postgres,
)


class TestQueryResult:

    def test_helpers(self):
        result = QueryResult(rows=[{"id": 1, "name": "a"}, {"id": 2, "name": "b"}], row_count=2)
        assert len(result) == 2
        assert result.first() == {"id": 1, "name": "a"}
        assert result.scalar() == 1
        assert [row["id"] for row in result] == [1, 2]

    def test_empty(self):
        result = QueryResult()
        assert result.rows == []
        assert result.row_count == 0
        assert result.first() is None
        assert result.scalar() is None

    def test_to_dict(self):
        result = QueryResult(rows=[{"x": 1}], row_count=1, fields=[FieldInfo("x", "int4")])
        assert result.to_dict() == {
            "rows": [{"x": 1}],
            "row_count": 1,
            "fields": [{"name": "x", "type_name": "int4", "nullable": None}],
        }

    def test_stats_to_dict(self):
        assert ConnectionStats(active=1, idle=2, total=3).to_dict() == {
            "active": 1, "idle": 2, "total": 3, "waiting": 0,
        }


class TestFromMSSQL:

    def test_rowset(self):
        description = (
            ("id", int, None, 10, 10, 0, False),
            ("name", str, None, 50, 50, 0, True),
        )
        result = from_mssql(description, [(1, "a"), (2, None)], -1)
        assert result.rows == [{"id": 1, "name": "a"}, {"id": 2, "name": None}]
        assert result.row_count == 2
        assert result.fields == [FieldInfo("id", "int", False), FieldInfo("name", "str", True)]

    def test_no_rowset_uses_rowcount(self):
        result = from_mssql(None, None, 4)
        assert result.rows == []
        assert result.row_count == 4
        assert result.fields is None

    def test_unknown_rowcount(self):
        assert from_mssql(None, None, -1).row_count == 0


class TestFromMySQL:

    def test_rowset(self):
        description = (("id", 3, None, 11, 11, 0, False), ("name", 253, None, 80, 80, 0, True))
        result = from_mysql(({"id": 1, "name": "a"},), description, 1)
        assert result.rows == [{"id": 1, "name": "a"}]
        assert result.row_count == 1
        assert [f.type_name for f in result.fields] == ["LONG", "VAR_STRING"]

    def test_affected_rows(self):
        result = from_mysql((), None, 3)
        assert result.rows == []
        assert result.row_count == 3

    def test_empty_rowset(self):
        result = from_mysql((), (("id", 3, None, None, None, None, None),), 0)
        assert result.rows == []
        assert result.row_count == 0
        assert result.fields[0].nullable is None


class TestFromPostgres:

    def _attrs(self, *names):
        return tuple(SimpleNamespace(name=n, type=SimpleNamespace(name="text")) for n in names)

    def test_rowset(self):
        result = from_postgres([{"id": 1}, {"id": 2}], "SELECT 2", self._attrs("id"))
        assert result.rows == [{"id": 1}, {"id": 2}]
        assert result.row_count == 2
        assert result.fields == [FieldInfo("id", "text")]

    def test_status_tags(self):
        assert from_postgres([], "INSERT 0 3").row_count == 3
        assert from_postgres([], "UPDATE 2").row_count == 2
        assert from_postgres([], "DELETE 0").row_count == 0
        assert from_postgres([], "CREATE TABLE").row_count == 0
        assert from_postgres(None, None).row_count == 0

    def test_absent_rows_are_empty_list(self):
        result = from_postgres(None, "UPDATE 5")
        assert result.rows == []
        assert result.fields is None
