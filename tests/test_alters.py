import pytest

from beeorm.alters import (
    Alter,
    TableSQLSchemaDefinition,
    drop_table_alter,
    get_schema_changes,
    indexes_from_rows,
    parse_create_table,
    sort_alters,
)
from beeorm.columns import (
    ColumnSchemaDefinition,
    IndexSchemaDefinition,
    build_create_index_sql,
)
from beeorm.registry import MySQLOptions

ID = ColumnSchemaDefinition("ID", "`ID` bigint unsigned NOT NULL")
AGE = ColumnSchemaDefinition("Age", "`Age` int NOT NULL DEFAULT '0'")
SIZE = ColumnSchemaDefinition("Size", "`Size` smallint NOT NULL DEFAULT '0'")


def options(encoding="utf8mb4"):
    return MySQLOptions(default_encoding=encoding, default_collate="0900_ai_ci")


def definition(columns, indexes=(), archived=False, encoding="utf8mb4", **extra):
    return TableSQLSchemaDefinition(
        database_name="test",
        table_name="entity",
        pool="default",
        options=options(encoding),
        entity_columns=list(columns),
        entity_indexes=list(indexes),
        archived=archived,
        **extra,
    )


def existing(columns, indexes=(), encoding="utf8mb4"):
    """Create statement of a table already built from these columns."""
    return definition(columns, indexes, encoding=encoding).create_table_sql()


def never_called():
    raise AssertionError("emptiness should not be checked")


def test_create_table_sql_layout():
    sql = definition([ID, AGE]).create_table_sql()
    assert sql.startswith("CREATE TABLE `test`.`entity` (\n")
    assert f"  {AGE.definition},\n" in sql
    assert " PRIMARY KEY (`ID`)\n" in sql
    assert sql.endswith(") ENGINE=InnoDB DEFAULT CHARSET=utf8mb4 COLLATE=utf8mb4_0900_ai_ci;")


def test_create_table_sql_archived():
    sql = definition([ID, AGE], archived=True).create_table_sql()
    assert f"  {ID.definition} AUTO_INCREMENT,\n" in sql
    assert "ENGINE=ARCHIVE" in sql
    assert sql.endswith(" ROW_FORMAT=COMPRESSED KEY_BLOCK_SIZE=8;")


def test_create_table_sql_sorts_indexes():
    plain = IndexSchemaDefinition("AgeIndex", False, {1: "Age"})
    unique = IndexSchemaDefinition("SizeIndex", True, {1: "Size"})
    sql = definition([ID, AGE, SIZE], [unique, plain]).create_table_sql()
    plain_line = "  " + build_create_index_sql(plain)[4:] + ",\n"
    unique_line = "  " + build_create_index_sql(unique)[4:] + ",\n"
    assert plain_line in sql and unique_line in sql
    assert sql.index(plain_line) < sql.index(unique_line)


def test_parse_create_table_round_trip():
    index = IndexSchemaDefinition("AgeIndex", False, {1: "Age"})
    columns, encoding, engine = parse_create_table(existing([ID, AGE, SIZE], [index]))
    assert columns == [ID, AGE, SIZE]
    assert encoding == "utf8mb4"
    assert engine == "InnoDB"


def test_indexes_from_rows_groups_by_name():
    rows = [
        ("PRIMARY", 0, 1, "ID"),
        ("Pair", 1, 1, "Age"),
        ("Pair", 1, 2, "Size"),
    ]
    indexes = indexes_from_rows(rows)
    assert [index.name for index in indexes] == ["PRIMARY", "Pair"]
    assert indexes[0].unique is True
    assert indexes[1].unique is False
    assert indexes[1].get_columns() == ["Age", "Size"]


def test_missing_table_is_created():
    table = definition([ID, AGE])
    pre, alters, post = get_schema_changes(table, never_called)
    assert pre == [] and post == []
    assert alters == [Alter(table.create_table_sql(), True, "default")]


def test_matching_table_needs_nothing():
    index = IndexSchemaDefinition("AgeIndex", False, {1: "Age"})
    db_indexes = indexes_from_rows([("PRIMARY", 0, 1, "ID"), ("AgeIndex", 1, 1, "Age")])
    table = definition(
        [ID, AGE], [index], db_create_schema=existing([ID, AGE], [index]), db_indexes=db_indexes
    )
    assert get_schema_changes(table, never_called) == ([], [], [])


def test_new_column_is_added_after_previous():
    table = definition([ID, AGE, SIZE], db_create_schema=existing([ID, AGE]))
    _, alters, _ = get_schema_changes(table, never_called)
    assert len(alters) == 1
    assert alters[0].sql.startswith("ALTER TABLE `test`.`entity`\n")
    assert alters[0].sql.endswith(f"    ADD COLUMN {SIZE.definition} AFTER `Age`;")
    assert alters[0].safe is True


@pytest.mark.parametrize("empty", [True, False])
def test_dropped_column_safety_follows_emptiness(empty):
    table = definition([ID], db_create_schema=existing([ID, AGE]))
    calls = []

    def is_empty():
        calls.append(1)
        return empty

    _, alters, _ = get_schema_changes(table, is_empty)
    assert "    DROP COLUMN `Age`;" in alters[0].sql
    assert alters[0].safe is empty
    assert calls == [1]


def test_changed_definition_carries_comment():
    wider = ColumnSchemaDefinition("Age", "`Age` bigint NOT NULL DEFAULT '0'")
    table = definition([ID, wider], db_create_schema=existing([ID, AGE]))
    _, alters, _ = get_schema_changes(table, False)
    sql = alters[0].sql
    assert f"CHANGE COLUMN `Age` {wider.definition} AFTER `ID`;" in sql
    assert sql.endswith(f"/*CHANGED FROM {AGE.definition}*/")
    assert alters[0].safe is False


def test_changed_order_is_reported():
    table = definition([ID, AGE, SIZE], db_create_schema=existing([ID, SIZE, AGE]))
    _, alters, _ = get_schema_changes(table, True)
    sql = alters[0].sql
    assert sql.count("/*CHANGED ORDER*/") == 2
    assert alters[0].safe is True


def test_index_changes():
    wanted = IndexSchemaDefinition("AgeIndex", True, {1: "Age"})
    db_indexes = indexes_from_rows(
        [("PRIMARY", 0, 1, "ID"), ("AgeIndex", 1, 1, "Age"), ("OldIndex", 1, 1, "Age")]
    )
    table = definition([ID, AGE], [wanted], db_create_schema=existing([ID, AGE]),
                       db_indexes=db_indexes)
    _, alters, _ = get_schema_changes(table, never_called)
    sql = alters[0].sql
    assert "    DROP INDEX `AgeIndex`," in sql
    assert "    DROP INDEX `OldIndex`," in sql
    assert sql.endswith("    " + build_create_index_sql(wanted) + ";")
    assert "PRIMARY" not in sql
    assert alters[0].safe is True


def test_charset_change_only():
    table = definition([ID, AGE], db_create_schema=existing([ID, AGE], encoding="latin1"))
    _, alters, _ = get_schema_changes(table, never_called)
    assert alters == [
        Alter(
            "ALTER TABLE `test`.`entity`\n ENGINE=InnoDB DEFAULT CHARSET=utf8mb4"
            " COLLATE=utf8mb4_0900_ai_ci;",
            True,
            "default",
        )
    ]


def test_pre_and_post_alters_pass_through():
    before = Alter("SELECT 1", True, "default")
    after = Alter("SELECT 2", True, "default")
    table = definition([ID], pre_alters=[before], post_alters=[after])
    pre, _, post = get_schema_changes(table, never_called)
    assert pre == [before]
    assert post == [after]


def test_drop_table_alter():
    alter = drop_table_alter("test", "unused", "default", False)
    assert alter == Alter("DROP TABLE IF EXISTS `test`.`unused`;", False, "default")


def test_sort_alters_by_length_is_stable():
    first = Alter("bb", True, "a")
    second = Alter("cc", True, "b")
    short = Alter("a", True, "c")
    result = sort_alters([first, second, short])
    assert result == [short, first, second]
    assert [len(a.sql) for a in result] == sorted(len(a.sql) for a in result)