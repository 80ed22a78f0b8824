"""Schema alters that bring a MySQL table in line with an entity definition."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterable, Sequence, Union

from .columns import ColumnSchemaDefinition, IndexSchemaDefinition, build_create_index_sql
from .registry import MySQLOptions

TableIsEmpty = Union[bool, Callable[[], bool]]


@dataclass
class Alter:
    """One SQL statement to run on a pool; ``safe`` means no data can be lost."""

    sql: str
    safe: bool
    pool: str


@dataclass
class TableSQLSchemaDefinition:
    """What an entity expects of its table and, when the table exists, what it has."""

    database_name: str
    table_name: str
    pool: str
    options: MySQLOptions
    entity_columns: list[ColumnSchemaDefinition] = field(default_factory=list)
    entity_indexes: list[IndexSchemaDefinition] = field(default_factory=list)
    archived: bool = False
    db_create_schema: str = ""
    db_table_columns: list[ColumnSchemaDefinition] = field(default_factory=list)
    db_indexes: list[IndexSchemaDefinition] = field(default_factory=list)
    db_encoding: str = ""
    engine: str = ""
    pre_alters: list[Alter] = field(default_factory=list)
    post_alters: list[Alter] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.db_encoding:
            self.db_encoding = self.options.default_encoding

    @property
    def _collate(self) -> str:
        encoding = self.options.default_encoding
        return f" COLLATE={encoding}_{self.options.default_collate}"

    def create_table_sql(self) -> str:
        """The ``CREATE TABLE`` statement for the entity's table."""
        lines = [f"CREATE TABLE `{self.database_name}`.`{self.table_name}` (\n"]
        for position, column in enumerate(self.entity_columns):
            if self.archived and position == 0:
                lines.append(f"  {column.definition} AUTO_INCREMENT,\n")
            else:
                lines.append(f"  {column.definition},\n")
        index_definitions = sorted(build_create_index_sql(index) for index in self.entity_indexes)
        lines.extend(f"  {definition[4:]},\n" for definition in index_definitions)
        lines.append(" PRIMARY KEY (`ID`)\n")
        engine = "ARCHIVE" if self.archived else "InnoDB"
        lines.append(
            f") ENGINE={engine} DEFAULT CHARSET={self.options.default_encoding}{self._collate}"
        )
        if self.archived:
            lines.append(" ROW_FORMAT=COMPRESSED KEY_BLOCK_SIZE=8")
        lines.append(";")
        return "".join(lines)


def parse_create_table(create_sql: str) -> tuple[list[ColumnSchemaDefinition], str, str]:
    """Split ``SHOW CREATE TABLE`` output into (columns, charset, engine).

    Charset and engine are empty strings when the statement does not name them.
    """
    columns: list[ColumnSchemaDefinition] = []
    encoding = ""
    engine = ""
    for line in create_sql.split("\n")[1:]:
        if len(line) < 3 or line[2] != "`":
            for word in line.split(" "):
                if word.startswith("CHARSET="):
                    encoding = word[len("CHARSET="):]
                elif word.startswith("ENGINE="):
                    engine = word[len("ENGINE="):]
            continue
        definition = line.rstrip(",").lstrip(" ")
        columns.append(ColumnSchemaDefinition(definition.split("`")[1], definition))
    return columns, encoding, engine


def indexes_from_rows(rows: Iterable[Sequence]) -> list[IndexSchemaDefinition]:
    """Group ``SHOW INDEXES`` rows of (key name, non unique, sequence, column)."""
    indexes: dict[str, IndexSchemaDefinition] = {}
    for key_name, non_unique, sequence, column in rows:
        current = indexes.get(key_name)
        if current is None:
            indexes[key_name] = IndexSchemaDefinition(
                name=key_name, unique=int(non_unique) == 0, columns_map={int(sequence): column}
            )
        else:
            current.columns_map[int(sequence)] = column
    return list(indexes.values())


def _last_position(columns: Sequence[ColumnSchemaDefinition], predicate) -> int:
    found = -1
    for position, column in enumerate(columns):
        if predicate(column):
            found = position
    return found


def _after(columns: Sequence[ColumnSchemaDefinition], position: int) -> str:
    return f" AFTER `{columns[position - 1].column_name}`" if position > 0 else ""


def _is_empty(table_is_empty: TableIsEmpty) -> bool:
    return bool(table_is_empty() if callable(table_is_empty) else table_is_empty)


def get_schema_changes(
    definition: TableSQLSchemaDefinition, table_is_empty: TableIsEmpty
) -> tuple[list[Alter], list[Alter], list[Alter]]:
    """Return (pre alters, alters, post alters) for one table.

    A table exists when ``definition.db_create_schema`` is set; its columns,
    charset and engine are read from it. ``table_is_empty`` (a flag or a
    callable) is consulted only when columns would be dropped or changed.
    """
    pre_alters = list(definition.pre_alters)
    post_alters = list(definition.post_alters)
    if not definition.db_create_schema:
        create = Alter(definition.create_table_sql(), True, definition.pool)
        return pre_alters, [create], post_alters

    db_columns, encoding, engine = parse_create_table(definition.db_create_schema)
    definition.db_table_columns = db_columns
    if encoding:
        definition.db_encoding = encoding
    definition.engine = engine

    options = definition.options
    archived = definition.archived
    has_alter_charset = definition.db_encoding != options.default_encoding
    has_alter_engine = (not archived and engine != "InnoDB") or (archived and engine != "ARCHIVE")
    has_alters = has_alter_charset or has_alter_engine

    columns = definition.entity_columns
    new_columns: list[str] = []
    changed_columns: list[tuple[str, str]] = []
    for position, column in enumerate(columns):
        current = db_columns[position].definition if position < len(db_columns) else ""
        if current == column.definition:
            continue
        has_name = _last_position(db_columns, lambda c: c.column_name == column.column_name)
        has_definition = _last_position(db_columns, lambda c: c.definition == column.definition)
        after = _after(columns, position)
        if has_name == -1:
            new_columns.append(f"ADD COLUMN {column.definition}{after}")
        else:
            alter = f"CHANGE COLUMN `{column.column_name}` {column.definition}{after}"
            if has_definition == -1:
                comment = f"CHANGED FROM {db_columns[has_name].definition}"
            else:
                comment = "CHANGED ORDER"
            changed_columns.append((alter, comment))
        has_alters = True

    entity_names = {column.column_name for column in columns}
    dropped_columns = [
        f"DROP COLUMN `{column.column_name}`"
        for column in db_columns
        if column.column_name not in entity_names
    ]
    has_alters = has_alters or bool(dropped_columns)

    dropped_indexes: list[str] = []
    new_indexes: list[str] = []
    for index in definition.entity_indexes:
        existing = next((i for i in definition.db_indexes if i.name == index.name), None)
        wanted = build_create_index_sql(index)
        if existing is None:
            new_indexes.append(wanted)
            has_alters = True
        elif wanted != build_create_index_sql(existing):
            dropped_indexes.append(f"DROP INDEX `{index.name}`")
            new_indexes.append(wanted)
            has_alters = True
    entity_index_names = {index.name for index in definition.entity_indexes}
    for index in definition.db_indexes:
        if index.name != "PRIMARY" and index.name not in entity_index_names:
            dropped_indexes.append(f"DROP INDEX `{index.name}`")
            has_alters = True

    if not has_alters:
        return pre_alters, [], post_alters

    alter_sql = f"ALTER TABLE `{definition.database_name}`.`{definition.table_name}`\n"
    statements: list[tuple[str, str]] = []
    statements.extend((value, "") for value in dropped_columns)
    statements.extend((value, "") for value in new_columns)
    statements.extend(changed_columns)
    statements.extend((value, "") for value in sorted(dropped_indexes))
    statements.extend((value, "") for value in sorted(new_indexes))

    alters: list[Alter] = []
    if statements:
        parts = []
        last = len(statements) - 1
        for position, (statement, comment) in enumerate(statements):
            text = f"    {statement}" + (";" if position == last else ",")
            if comment:
                text += f"/*{comment}*/"
            parts.append(text)
        alter_sql += "\n".join(parts)
        if not dropped_columns and not changed_columns:
            safe = True
        else:
            safe = _is_empty(table_is_empty)
        alters.append(Alter(alter_sql, safe, definition.pool))
    elif has_alter_charset or has_alter_engine:
        engine_name = "ARCHIVE" if archived else "InnoDB"
        alter_sql += (
            f" ENGINE={engine_name}"
            f" DEFAULT CHARSET={options.default_encoding}{definition._collate};"
        )
        alters.append(Alter(alter_sql, True, definition.pool))
    return pre_alters, alters, post_alters


def drop_table_alter(database_name: str, table_name: str, pool: str, safe: bool) -> Alter:
    """Alter removing a table that no entity uses."""
    return Alter(f"DROP TABLE IF EXISTS `{database_name}`.`{table_name}`;", safe, pool)


def sort_alters(alters: Iterable[Alter]) -> list[Alter]:
    """Alters ordered by the length of their SQL, shortest first."""
    return sorted(alters, key=lambda alter: len(alter.sql))