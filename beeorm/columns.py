"""Column and index definitions derived from entity field descriptions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, MutableMapping, Sequence

from .registry import MySQLOptions

_MAX_ARRAY_LEN = 100
_MAX_INDEX_COLUMNS = 100
_MAX_VARCHAR = 65535

_INT_TYPES = frozenset(
    {"uint", "uint8", "uint16", "uint32", "uint64", "int8", "int16", "int32", "int64", "int"}
)


@dataclass
class ColumnSchemaDefinition:
    """A column name together with its full SQL definition."""

    column_name: str
    definition: str


@dataclass
class IndexSchemaDefinition:
    """An index with its columns keyed by 1-based position."""

    name: str
    unique: bool = False
    columns_map: dict[int, str] = field(default_factory=dict)

    def get_columns(self) -> list[str]:
        """Columns in position order; a gap in positions gives an empty name."""
        return [self.columns_map.get(i, "") for i in range(1, len(self.columns_map) + 1)]

    def set_columns(self, columns: Sequence[str]) -> None:
        self.columns_map = {position: name for position, name in enumerate(columns, start=1)}


@dataclass
class Field:
    """Description of one entity field.

    ``type_name`` is one of the scalar names (``uint64``, ``*int``, ``string``,
    ``bool``, ``float64``, ``time.Time``, ``[]uint8`` ...) or one of the kinds
    ``struct``, ``reference``, ``enum`` and ``set``. ``array_len`` is None for a
    field that is not a fixed-size array.
    """

    name: str
    type_name: str
    tags: Mapping[str, str] = field(default_factory=dict)
    array_len: int | None = None
    enum_values: Sequence[str] = ()
    fields: Sequence["Field"] = ()
    anonymous: bool = False


def convert_int_to_schema(type_name: str, attributes: Mapping[str, str]) -> str:
    """SQL integer type for an integer type name."""
    medium = attributes.get("mediumint") == "true"
    if type_name == "uint":
        return "int unsigned"
    if type_name == "uint8":
        return "tinyint unsigned"
    if type_name == "uint16":
        return "smallint unsigned"
    if type_name == "uint32":
        return "mediumint unsigned" if medium else "int unsigned"
    if type_name == "uint64":
        return "bigint unsigned"
    if type_name == "int8":
        return "tinyint"
    if type_name == "int16":
        return "smallint"
    if type_name == "int32":
        return "mediumint" if medium else "int"
    if type_name == "int64":
        return "bigint"
    return "int"


def handle_int(
    type_name: str, attributes: Mapping[str, str], nullable: bool
) -> tuple[str, bool, str | None]:
    """Return (definition, not null, default) for an integer column."""
    if nullable:
        return convert_int_to_schema(type_name[1:], attributes), False, None
    return convert_int_to_schema(type_name, attributes), True, "'0'"


def handle_float(
    float_definition: str, attributes: Mapping[str, str], nullable: bool
) -> tuple[str, bool, str | None]:
    """Return (definition, not null, default) for a floating point column."""
    default = "'0'"
    decimal = attributes.get("decimal")
    if decimal is not None:
        precision, scale = decimal.split(",")[:2]
        definition = f"decimal({precision},{scale})"
        default = f"'{0:.{int(scale)}f}'"
    else:
        definition = float_definition
    if attributes.get("unsigned") == "true":
        definition += " unsigned"
    if nullable:
        return definition, False, None
    return definition, True, default


def handle_blob(attributes: Mapping[str, str]) -> tuple[str, bool]:
    """Return (definition, add DEFAULT NULL) for a binary column."""
    definition = "blob"
    if attributes.get("mediumblob") == "true":
        definition = "mediumblob"
    if attributes.get("longblob") == "true":
        definition = "longblob"
    return definition, False


def handle_string(
    options: MySQLOptions, attributes: Mapping[str, str], nullable: bool
) -> tuple[str, bool, bool, str | None]:
    """Return (definition, not null, add DEFAULT NULL, default) for a text column."""
    length = attributes.get("length", "255")
    encoding = options.default_encoding
    collate = f"{encoding}_{options.default_collate}"
    if length == "max":
        definition = f"mediumtext CHARACTER SET {encoding} COLLATE {collate}"
        return definition, not nullable, False, None
    try:
        size = int(length)
    except ValueError:
        size = None
    if size is None or size > _MAX_VARCHAR:
        raise ValueError(f"invalid max string: {length}")
    definition = f"varchar({size}) CHARACTER SET {encoding} COLLATE {collate}"
    return definition, not nullable, True, (None if nullable else "''")


def handle_set_enum(
    field_type: str, values: Sequence[str], options: MySQLOptions, nullable: bool
) -> tuple[str, bool, bool, str | None]:
    """Return (definition, not null, add DEFAULT NULL, default) for an enum or set column."""
    allowed = list(values)
    if not allowed:
        raise ValueError("empty enum not allowed")
    encoding = options.default_encoding
    listed = ",".join(f"'{value}'" for value in allowed)
    definition = f"{field_type}({listed}) CHARACTER SET {encoding} COLLATE {encoding}_0900_ai_ci"
    default = None if nullable else f"'{allowed[0]}'"
    return definition, not nullable, True, default


def handle_time(
    attributes: Mapping[str, str], nullable: bool
) -> tuple[str, bool, bool, str | None]:
    """Return (definition, not null, add DEFAULT NULL, default) for a date or datetime column."""
    if attributes.get("time") == "true":
        return "datetime", not nullable, True, (None if nullable else "'1000-01-01 00:00:00'")
    return "date", not nullable, True, (None if nullable else "'0001-01-01'")


def build_create_index_sql(index: IndexSchemaDefinition) -> str:
    """``ADD [UNIQUE] INDEX`` clause for ``index``; columns stop at the first gap."""
    columns: list[str] = []
    for position in range(1, _MAX_INDEX_COLUMNS + 1):
        if position not in index.columns_map:
            break
        columns.append(f"`{index.columns_map[position]}`")
    index_type = "UNIQUE INDEX" if index.unique else "INDEX"
    return f"ADD {index_type} `{index.name}` ({','.join(columns)})"


def _register_indexes(
    attributes: Mapping[str, str],
    indexes: MutableMapping[str, IndexSchemaDefinition],
    column: str,
) -> None:
    for key in ("index", "unique"):
        spec = attributes.get(key)
        if spec is None:
            continue
        for entry in spec.split(","):
            parts = entry.split(":")
            location = 1
            if len(parts) > 1:
                try:
                    location = int(parts[1])
                except ValueError:
                    raise ValueError(
                        f"invalid index position '{parts[1]}' in index '{parts[0]}'"
                    ) from None
            current = indexes.get(parts[0])
            if current is None:
                indexes[parts[0]] = IndexSchemaDefinition(
                    name=parts[0], unique=key == "unique", columns_map={location: column}
                )
            else:
                current.columns_map[location] = column


def _scalar_definition(
    item: Field, options: MySQLOptions, is_required: bool
) -> tuple[str, bool, bool, str | None]:
    attributes = item.tags
    type_name = item.type_name
    if type_name in _INT_TYPES:
        return (*handle_int(type_name, attributes, False)[:2], True,
                handle_int(type_name, attributes, False)[2])
    if type_name.startswith("*") and type_name[1:] in _INT_TYPES:
        definition, not_null, default = handle_int(type_name, attributes, True)
        return definition, not_null, True, default
    if type_name == "bool":
        return "tinyint(1)", True, True, "'0'"
    if type_name == "*bool":
        return "tinyint(1)", False, True, None
    if type_name == "string":
        return handle_string(options, attributes, not is_required)
    if type_name in ("float32", "float64", "*float32", "*float64"):
        sql_type = "float" if type_name.endswith("32") else "double"
        definition, not_null, default = handle_float(
            sql_type, attributes, type_name.startswith("*")
        )
        return definition, not_null, True, default
    if type_name == "time.Time":
        return handle_time(attributes, False)
    if type_name == "*time.Time":
        return handle_time(attributes, True)
    if type_name == "[]uint8":
        definition, add_default_null = handle_blob(attributes)
        return definition, False, add_default_null, None
    if type_name == "reference":
        definition, not_null, default = handle_int("uint64", attributes, not is_required)
        return definition, not_null, True, default
    if type_name in ("enum", "set"):
        return handle_set_enum(type_name, item.enum_values, options, not is_required)
    raise ValueError(
        f"field type {item.type_name} is not supported, consider adding  tag `ignore`"
    )


def check_column(
    field: Field,
    options: MySQLOptions,
    indexes: MutableMapping[str, IndexSchemaDefinition],
    prefix: str,
    archived: bool,
) -> list[ColumnSchemaDefinition]:
    """Columns produced by one field; indexes named in its tags are added to ``indexes``."""
    attributes = field.tags
    if "ignore" in attributes:
        return []
    base_name = prefix + field.name
    is_array = field.array_len is not None
    if is_array and field.array_len > _MAX_ARRAY_LEN:
        raise ValueError(f"array len for column {base_name} exceeded limit of 100")
    is_required = attributes.get("required") == "true"
    columns: list[ColumnSchemaDefinition] = []
    for position in range(1, (field.array_len if is_array else 1) + 1):
        column_name = f"{base_name}_{position}" if is_array else base_name
        _register_indexes(attributes, indexes, base_name)
        if field.type_name == "struct":
            sub_prefix = prefix
            if not field.anonymous:
                sub_prefix += field.name
                if is_array:
                    sub_prefix += f"_{position}_"
            columns.extend(
                check_struct(field.fields, options, indexes, sub_prefix, archived, False)
            )
            continue
        definition, not_null, add_default_null, default = _scalar_definition(
            field, options, is_required
        )
        is_not_null = False
        if not_null or is_required:
            definition += " NOT NULL"
            is_not_null = True
        if default is not None and column_name != "ID":
            definition += " DEFAULT " + default
        elif not is_not_null and add_default_null:
            definition += " DEFAULT NULL"
        if archived and prefix == "" and column_name == "ID":
            definition += " AUTO_INCREMENT"
        columns.append(ColumnSchemaDefinition(column_name, f"`{column_name}` {definition}"))
    return columns


def check_struct(
    fields: Sequence[Field],
    options: MySQLOptions,
    indexes: MutableMapping[str, IndexSchemaDefinition],
    prefix: str,
    archived: bool,
    root: bool,
) -> list[ColumnSchemaDefinition]:
    """Columns of all ``fields``; a root entity must start with an unsigned ``ID``."""
    if root:
        if not fields or fields[0].name != "ID":
            raise ValueError("field ID on position 1 is missing")
        if not fields[0].type_name.startswith("uint"):
            raise ValueError("ID column must be uint")
    columns: list[ColumnSchemaDefinition] = []
    for item in fields:
        columns.extend(check_column(item, options, indexes, prefix, archived))
    return columns