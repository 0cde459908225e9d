import dataclasses
import logging
from typing import Iterator

from rotonde.core.models.definition import Definition, merge_fields


class DefinitionStore:
    """
    Insertion-ordered collection of definitions of a single kind,
    indexed by identifier.

    The store holds at most one definition per identifier. Putting a
    definition whose identifier is already known merges the field lists
    (existing fields win on name collisions) and replaces the rest of the
    stored record in place, so iteration order is the order in which
    identifiers were first seen.

    Lookups of unknown identifiers never raise; they are reported on the
    store's logger and return None.
    """

    def __init__(self, name: str = "definitions") -> None:
        self._name = name
        self._definitions: list[Definition] = []
        self._index: dict[str, Definition] = {}
        self._logger = logging.getLogger("core.store.definitions")

    def __iter__(self) -> Iterator[Definition]:
        return self.list()

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._index

    def list(self) -> Iterator[Definition]:
        """
        Iterate definitions in insertion order.

        Each call returns a fresh iterator over a snapshot, so the store
        may be mutated while the caller iterates.
        """
        return iter(list(self._definitions))

    def get(self, identifier: str) -> Definition | None:
        definition = self._index.get(identifier)
        if definition is None:
            self._logger.warning(f"[{self._name}] Unknown definition '{identifier}'")
        return definition

    def put(self, definition: Definition) -> Definition:
        current = self._index.get(definition.identifier)
        if current is None:
            stored = dataclasses.replace(definition, fields=merge_fields([], definition.fields))
            self._definitions.append(stored)
        else:
            stored = dataclasses.replace(
                definition, fields=merge_fields(current.fields, definition.fields)
            )
            self._definitions[self._position(current)] = stored

        self._reindex()
        return stored

    def remove(self, identifier: str) -> Definition | None:
        current = self._index.get(identifier)
        if current is None:
            return None

        del self._definitions[self._position(current)]
        self._reindex()
        return current

    def _position(self, definition: Definition) -> int:
        for position, candidate in enumerate(self._definitions):
            if candidate is definition:
                return position
        raise LookupError(definition.identifier)  # index out of sync

    def _reindex(self) -> None:
        self._index = {d.identifier: d for d in self._definitions}
