#!/usr/bin/env python3
# kate: replace-tabs on; indent-width 4;

"""
Field selectors: dotted access paths from a message down to a field.

A selector such as ``shelf.book.name`` is stored as the tuple of Field
objects it walks through. Selectors are immutable values; two selectors are
equal when they walk through the same fields.
"""

from dataclasses import dataclass
from typing import Tuple

from .schema_model import Field, MessageType, TypeRef


class BindingError(ValueError):
    """Raised when a binding references a field path that does not exist."""


@dataclass(frozen=True)
class FieldSelector:
    fields: Tuple[Field, ...]

    def __post_init__(self):
        if not self.fields:
            raise ValueError("FieldSelector needs at least one field")

    @classmethod
    def of(cls, *fields: Field) -> 'FieldSelector':
        return cls(tuple(fields))

    @classmethod
    def resolve(cls, message: MessageType, path: str) -> 'FieldSelector':
        """
        Resolve a dotted field path against a message.

        Args:
            message: The message the path starts from
            path: Field names separated by '.', e.g. "shelf.name"

        Returns:
            The resolved FieldSelector.

        Raises:
            BindingError: A path element is not a field, or the path
                          continues through a non-message field.
        """
        fields = []
        current = message
        for name in path.split('.'):
            if current is None:
                raise BindingError(
                    f"Field path '{path}' continues past non-message field '{fields[-1].name}'")
            field = current.find_field(name.strip())
            if field is None:
                raise BindingError(f"No field '{name}' in message '{current.full_name}' (path '{path}')")
            fields.append(field)
            current = field.type.message_type
        return cls(tuple(fields))

    @staticmethod
    def has_single_path_element(path: str) -> bool:
        return '.' not in path

    @property
    def last_field(self) -> Field:
        return self.fields[-1]

    @property
    def type(self) -> TypeRef:
        return self.last_field.type

    def extend(self, field: Field) -> 'FieldSelector':
        return FieldSelector(self.fields + (field,))

    def is_prefix_of(self, other: 'FieldSelector') -> bool:
        """Strict prefix: every step matches and self is shorter."""
        size = len(self.fields)
        return size < len(other.fields) and other.fields[:size] == self.fields

    def __str__(self):
        return '.'.join(f.name for f in self.fields)

    def __repr__(self):
        return f"FieldSelector({self})"
