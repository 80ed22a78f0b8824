"""SQL ``WHERE`` fragments with positional parameters."""

from __future__ import annotations

from typing import Any


def _expand(query: str, args: tuple[Any, ...]) -> tuple[str, list[Any]]:
    parameters: list[Any] = []
    for value in args:
        if isinstance(value, (list, tuple)):
            placeholders = ",".join("?" * len(value))
            query = query.replace("IN ?", f"IN ({placeholders})", 1)
            parameters.extend(value)
        else:
            parameters.append(value)
    return query, parameters


class Where:
    """A query fragment; list or tuple parameters expand the next ``IN ?``."""

    def __init__(self, query: str, *args: Any) -> None:
        self._query, self._parameters = _expand(query, args)

    def __str__(self) -> str:
        return self._query

    def __repr__(self) -> str:
        return f"Where({self._query!r}, parameters={self._parameters!r})"

    def set_parameter(self, index: int, param: Any) -> "Where":
        """Replace the parameter at 1-based ``index``."""
        if index < 1 or index > len(self._parameters):
            raise IndexError(f"parameter index {index} out of range")
        self._parameters[index - 1] = param
        return self

    def set_parameters(self, *args: Any) -> "Where":
        self._parameters = list(args)
        return self

    def get_parameters(self) -> list[Any]:
        return self._parameters

    def append(self, query: str, *args: Any) -> None:
        """Add a further fragment and its parameters."""
        expanded, parameters = _expand(query, args)
        if not query.startswith(" "):
            self._query += " "
        self._query += expanded
        self._parameters.extend(parameters)