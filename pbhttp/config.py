#!/usr/bin/env python3
# kate: replace-tabs on; indent-width 4;

"""
Validator options.

Options come from three places, later ones extending earlier ones:
the built-in defaults, the PBHTTP_ALLOWED_REPEATED_FIELDS environment
variable (comma-separated full field names) and command line flags.
"""

import os
from dataclasses import dataclass, field, replace
from typing import FrozenSet, Iterable, Mapping, Optional

ENV_ALLOWED_REPEATED_FIELDS = 'PBHTTP_ALLOWED_REPEATED_FIELDS'

# This map field is handled by HTTP gateways themselves and is never
# mapped to a query parameter.
DEFAULT_ALLOWED_REPEATED_QUERY_FIELDS: FrozenSet[str] = frozenset({
    'google.api.HttpBody.extensions',
})


def _split_names(value: str) -> FrozenSet[str]:
    return frozenset(name.strip() for name in value.split(',') if name.strip())


@dataclass(frozen=True)
class ValidatorOptions:
    """
    Attributes:
        allowed_repeated_query_fields: Full names of repeated message fields
            that may be reached by query parameters without an error.
    """
    allowed_repeated_query_fields: FrozenSet[str] = field(
        default_factory=lambda: DEFAULT_ALLOWED_REPEATED_QUERY_FIELDS)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'ValidatorOptions':
        environ = os.environ if environ is None else environ
        options = cls()
        extra = environ.get(ENV_ALLOWED_REPEATED_FIELDS, '')
        if extra:
            options = options.with_allowed_repeated_fields(_split_names(extra))
        return options

    def with_allowed_repeated_fields(self, names: Iterable[str]) -> 'ValidatorOptions':
        return replace(self, allowed_repeated_query_fields=self.allowed_repeated_query_fields | frozenset(names))
