#!/usr/bin/env python3
# kate: replace-tabs on; indent-width 4;

"""
HTTP bindings extracted from google.api.http method options.

An HttpRule declares how an RPC method is exposed over HTTP: a verb with a
path template, an optional body and, implicitly, query parameters for every
request field the path and body leave unbound. HttpBinding resolves those
declarations against the method's input message so the checks in
http_validator only ever deal with FieldSelectors.

Example:
    rule = http_pb2.HttpRule(get='/v1/{name=shelves/*}')
    binding = HttpBinding.from_rule(method, rule)
    binding.path_selectors    # [FieldSelector(name)]
    binding.param_selectors   # every other field of the request
"""

import re
from enum import Enum
from typing import List, Optional, Sequence

from google.api import annotations_pb2, http_pb2

from .field_selector import BindingError, FieldSelector
from .schema_model import MessageType, Method

__all__ = ['BindingError', 'HttpBinding', 'MethodKind', 'UNBOUND_BODY', 'binding_for_method']

# Body value that maps every field not bound by the path into the body.
UNBOUND_BODY = '*'

# {field.path} or {field.path=segment/*/**}
_PATH_VARIABLE_RE = re.compile(r'\{\s*([^}=\s]+)\s*(?:=[^}]*)?\}')


class MethodKind(Enum):
    """HTTP verb semantics of a binding. NONE disables body and response checks."""
    NONE = 'none'
    GET = 'get'
    PUT = 'put'
    POST = 'post'
    DELETE = 'delete'
    PATCH = 'patch'

    @classmethod
    def for_rule(cls, rule: http_pb2.HttpRule) -> 'MethodKind':
        pattern = rule.WhichOneof('pattern')
        if pattern is None:
            return cls.NONE
        if pattern == 'custom':
            try:
                return cls(rule.custom.kind.lower())
            except ValueError:
                return cls.NONE
        return cls(pattern)


def _path_template(rule: http_pb2.HttpRule) -> str:
    pattern = rule.WhichOneof('pattern')
    if pattern is None:
        return ''
    if pattern == 'custom':
        return rule.custom.path
    return getattr(rule, pattern)


def path_variables(template: str) -> List[str]:
    """Return the field paths of the variables of a path template, in order."""
    return [m.group(1) for m in _PATH_VARIABLE_RE.finditer(template)]


def unbound_selectors(message: MessageType, bound: Sequence[FieldSelector],
                      prefix: Optional[FieldSelector] = None) -> List[FieldSelector]:
    """
    Collect selectors for every field not covered by a bound selector.

    A message field that is only partly bound (some bound selector goes
    through it) is expanded into its own fields; fully unbound fields are
    returned as they are, without descending into them.
    """
    result: List[FieldSelector] = []
    for field in message.fields:
        selector = prefix.extend(field) if prefix is not None else FieldSelector.of(field)
        if selector in bound:
            continue
        if any(selector.is_prefix_of(b) for b in bound):
            if field.type.is_message and not field.type.is_repeated:
                result.extend(unbound_selectors(field.type.message_type, bound, selector))
            continue
        result.append(selector)
    return result


class HttpBinding:
    """
    A resolved HTTP binding of one method.

    Attributes:
        method: The method the binding belongs to
        http_rule: The raw HttpRule the binding was built from
        method_kind: Verb semantics of the rule
        path: The path template
        body: The declared body field path, or None when there is no body
        body_selectors: Selectors mapped into the body
        path_selectors: Selectors captured by path variables, in template order
        param_selectors: Selectors mapped to query parameters
        additional_bindings: Bindings from rule.additional_bindings; only
                             filled on a primary binding
        is_primary: False for bindings built from additional_bindings
    """

    def __init__(self, method: Method, http_rule: http_pb2.HttpRule, method_kind: MethodKind,
                 path: str = '', body: Optional[str] = None,
                 body_selectors: Sequence[FieldSelector] = (),
                 path_selectors: Sequence[FieldSelector] = (),
                 param_selectors: Sequence[FieldSelector] = (),
                 additional_bindings: Sequence['HttpBinding'] = (),
                 is_primary: bool = True):
        self.method = method
        self.http_rule = http_rule
        self.method_kind = method_kind
        self.path = path
        self.body = body
        self.body_selectors = list(body_selectors)
        self.path_selectors = list(path_selectors)
        self.param_selectors = list(param_selectors)
        self.additional_bindings = list(additional_bindings)
        self.is_primary = is_primary

    @classmethod
    def from_rule(cls, method: Method, rule: http_pb2.HttpRule, is_primary: bool = True) -> 'HttpBinding':
        """
        Resolve an HttpRule against a method's request message.

        Nested additional_bindings are only expanded for a primary binding;
        an additional binding that declares more of them is kept as is so
        the validator can report it.

        Raises:
            BindingError: A path variable or the body names an unknown field.
        """
        message = method.input_message
        template = _path_template(rule)
        path_selectors = [FieldSelector.resolve(message, v) for v in path_variables(template)]

        body = rule.body or None
        if body == UNBOUND_BODY:
            body_selectors = unbound_selectors(message, path_selectors)
            param_selectors = []
        elif body is not None:
            body_selectors = [FieldSelector.resolve(message, body)]
            param_selectors = unbound_selectors(message, path_selectors + body_selectors)
        else:
            body_selectors = []
            param_selectors = unbound_selectors(message, path_selectors)

        additional = []
        if is_primary:
            additional = [cls.from_rule(method, r, is_primary=False) for r in rule.additional_bindings]

        return cls(method, rule, MethodKind.for_rule(rule), template, body,
                   body_selectors, path_selectors, param_selectors, additional, is_primary)

    def body_captures_unbound_fields(self) -> bool:
        return self.body == UNBOUND_BODY

    def __repr__(self):
        return (f"HttpBinding({self.method.full_name}, {self.method_kind.name} "
                f"{self.path!r}, body={self.body!r})")


def binding_for_method(method: Method) -> Optional[HttpBinding]:
    """Return the primary binding of a method, or None if it has no http option."""
    if not method.options.HasExtension(annotations_pb2.http):
        return None
    return HttpBinding.from_rule(method, method.options.Extensions[annotations_pb2.http])
