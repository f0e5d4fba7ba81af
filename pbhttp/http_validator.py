#!/usr/bin/env python3
# kate: replace-tabs on; indent-width 4;

"""
HTTP Binding Validation
=======================

Checks that the google.api.http bindings of RPC methods can be rendered as
HTTP. For each binding five independent checks run, and every violation is
reported to a DiagReporter; nothing stops at the first problem.

Checks
------
1. **Body**: a named body must be a direct field of the request and must be
   a non-repeated message that renders as a JSON object.
2. **Path overlap**: no path variable may capture a field path that is a
   prefix of another path variable.
3. **Response**: for bindings with an HTTP verb, the response message must
   render as a JSON object.
4. **Query parameters**: fields reached through query parameters must
   flatten to key=value pairs: no maps, no repeated messages, no message
   cycles. This check walks the message graph recursively.
5. **Path parameters**: path variables must end in a scalar or a
   well-known type allowed in a path segment.

Additional bindings are also checked for nested additional_bindings and
for a selector, neither of which is allowed there.
"""

from typing import Iterable, List, Optional, Set

from .config import ValidatorOptions
from .diagnostics import DiagKind, DiagReporter, Diagnostic
from .field_selector import FieldSelector
from .http_binding import HttpBinding, MethodKind, binding_for_method
from .schema_model import Field, Method, SchemaModel


def get_input_message_name(method: Method) -> str:
    """Full name of the request message of a method."""
    return method.input_message.full_name


class HttpConfigValidator:
    """
    Validates the HTTP bindings of methods.

    Attributes:
        reporter: Sink receiving every diagnostic
        options: ValidatorOptions, including the repeated-field allow-list
    """

    def __init__(self, reporter: Optional[DiagReporter] = None,
                 options: Optional[ValidatorOptions] = None):
        self.reporter = reporter if reporter is not None else DiagReporter()
        self.options = options if options is not None else ValidatorOptions()

    # =========================================================================
    # Entry points
    # =========================================================================

    def run(self, method: Method, binding: Optional[HttpBinding] = None) -> None:
        """
        Validate the primary binding of a method and its additional bindings.

        Args:
            method: The method to validate
            binding: Its primary binding. Read from the method's
                     google.api.http option when not given. Methods without a
                     binding are skipped.
        """
        if binding is None:
            binding = binding_for_method(method)
        if binding is None:
            return
        self.validate(method, binding)
        for additional_binding in binding.additional_bindings:
            self.validate_additional_binding_constraints(method, additional_binding)
            self.validate(method, additional_binding)

    def check(self, method: Method, binding: Optional[HttpBinding] = None) -> List[Diagnostic]:
        """
        Run the validator on one method and return what it reported.

        Diagnostics are collected in a private reporter and then forwarded to
        the shared one, so the result never includes diagnostics reported by
        other threads in the meantime.
        """
        local = type(self)(DiagReporter(), self.options)
        local.run(method, binding)
        diagnostics = local.reporter.diagnostics
        for diagnostic in diagnostics:
            self.reporter.report(diagnostic)
        return diagnostics

    def validate_methods(self, methods: Iterable[Method]) -> None:
        for method in methods:
            self.run(method)

    def validate_model(self, model: SchemaModel) -> None:
        self.validate_methods(model.methods)

    def validate(self, method: Method, binding: HttpBinding) -> None:
        """Apply the five binding checks."""
        kind = binding.method_kind
        self.check_body_constraints(binding, method)
        self.check_overlapping_path_selectors(method, binding)
        self.check_response_object(method, kind)
        self.check_query_parameter_constraints(method, binding)
        self.check_path_parameter_constraints(method, binding.path_selectors)

    def _error(self, method: Method, kind: DiagKind, fmt: str, *args) -> None:
        self.reporter.error(method.location, kind, fmt, *args)

    # =========================================================================
    # Body and response
    # =========================================================================

    def check_body_constraints(self, binding: HttpBinding, method: Method) -> None:
        if binding.method_kind is MethodKind.NONE:
            return
        if binding.body is None or binding.body_captures_unbound_fields():
            return

        if not FieldSelector.has_single_path_element(binding.body):
            self._error(method, DiagKind.BODY_MUST_BE_TOP_LEVEL_FIELD,
                        "body field path '%s' should not reference sub messages.",
                        binding.body)
            return

        # The body names exactly one field here.
        if len(binding.body_selectors) != 1:
            return
        body_field = binding.body_selectors[0]
        body_type = body_field.type
        if (not body_type.is_message
                or body_type.is_repeated
                or not body_type.well_known_type.allowed_as_http_request_response()):
            self._error(method, DiagKind.BODY_MUST_BE_NON_REPEATED_ALLOWED_MESSAGE,
                        "body field path '%s' must be a non-repeated message.",
                        body_field)

    def check_response_object(self, method: Method, kind: MethodKind) -> None:
        if kind is MethodKind.NONE:
            return
        wkt = method.output_type.well_known_type
        if not wkt.allowed_as_http_request_response():
            self._error(method, DiagKind.RESPONSE_NOT_JSON_RENDERABLE,
                        "type '%s' is not allowed as a response because it does not render as "
                        "a JSON object.",
                        method.output_message.full_name)

    # =========================================================================
    # Path
    # =========================================================================

    def check_overlapping_path_selectors(self, method: Method, binding: HttpBinding) -> None:
        """
        Report path selectors that cover a prefix of other path selectors.

        Every ordered pair of distinct positions is visited. "a.b" and
        "a.b.c" are reported once, with the prefix first. Two variables
        capturing the same field path are prefixes of each other and are
        reported once per ordering.
        """
        selectors = binding.path_selectors
        for i, selector in enumerate(selectors):
            for j, other_selector in enumerate(selectors):
                if i == j:
                    continue
                if selector == other_selector or selector.is_prefix_of(other_selector):
                    self._error(method, DiagKind.OVERLAPPING_PATH_SELECTORS,
                                "path contains overlapping field paths '%s' and '%s'.",
                                selector, other_selector)

    def check_path_parameter_constraints(self, method: Method,
                                         path_selectors: Iterable[Optional[FieldSelector]]) -> None:
        for selector in path_selectors:
            if selector is not None:
                self.check_path_parameter_conditions(method, selector)

    def check_path_parameter_conditions(self, method: Method, selector: FieldSelector) -> None:
        """Checks context conditions for selectors bound to the HTTP path."""
        type_ref = selector.type
        if type_ref.is_map:
            self._error(method, DiagKind.MAP_OR_REPEATED_OR_DISALLOWED_MESSAGE_ON_PATH,
                        "map field not allowed: reached via '%s' on message '%s'.",
                        selector, get_input_message_name(method))
        elif type_ref.is_repeated:
            self._error(method, DiagKind.MAP_OR_REPEATED_OR_DISALLOWED_MESSAGE_ON_PATH,
                        "repeated field not allowed: reached via '%s' on message '%s'.",
                        selector, get_input_message_name(method))
        elif type_ref.is_message and not type_ref.well_known_type.allowed_as_path_parameter():
            self._error(method, DiagKind.MAP_OR_REPEATED_OR_DISALLOWED_MESSAGE_ON_PATH,
                        "message field not allowed: reached via '%s' on message '%s'.",
                        selector, get_input_message_name(method))

    # =========================================================================
    # Query parameters
    # =========================================================================

    def check_query_parameter_constraints(self, method: Method, binding: HttpBinding) -> None:
        # Only the terminal field of each selector is walked.
        fields = [selector.last_field for selector in binding.param_selectors]
        self.check_http_query_parameter_constraints(method, fields, set())

    def check_http_query_parameter_constraints(self, method: Method, fields: Iterable[Field],
                                               visited: Set[str]) -> None:
        """Check context conditions on http parameters."""
        for field in fields:
            self.check_http_parameter_conditions(method, field, visited)

    def check_http_parameter_conditions(self, method: Method, field: Field, visited: Set[str]) -> None:
        """
        Check one field reached through query parameters.

        Args:
            method: The method being validated
            field: The field to check
            visited: Full names of the message types being expanded on the
                     current walk path. A type is added before its fields are
                     walked and removed right after, so reuse of a type on
                     sibling branches is not mistaken for a cycle.
        """
        type_ref = field.type
        if type_ref.is_map:
            self._error(method, DiagKind.MAP_NOT_ALLOWED_AS_PARAM,
                        "map field '%s' referred to by message '%s' cannot be mapped as an HTTP parameter.",
                        field.full_name, get_input_message_name(method))
            return

        if not type_ref.is_message:
            return
        if type_ref.well_known_type.allowed_as_http_parameter():
            return

        message_type = type_ref.message_type
        if message_type.full_name in visited:
            self._error(method, DiagKind.CYCLIC_PARAM_REFERENCE,
                        "cyclic message field '%s' referred to by message '%s' in method '%s' cannot be mapped "
                        "as an HTTP parameter.",
                        field.full_name, get_input_message_name(method), method)
            return

        if type_ref.is_repeated:
            if field.full_name in self.options.allowed_repeated_query_fields:
                return
            self._error(method, DiagKind.REPEATED_MESSAGE_NOT_ALLOWED_AS_PARAM,
                        "repeated message field '%s' referred to by message '%s' cannot be mapped "
                        "as an HTTP parameter.",
                        field.full_name, get_input_message_name(method))

        visited.add(message_type.full_name)
        try:
            self.check_http_query_parameter_constraints(method, message_type.fields, visited)
        finally:
            visited.discard(message_type.full_name)

    # =========================================================================
    # Additional bindings
    # =========================================================================

    def validate_additional_binding_constraints(self, method: Method, binding: HttpBinding) -> None:
        # Additional bindings must not specify more bindings or a selector.
        rule = binding.http_rule
        if len(rule.additional_bindings) > 0:
            self._error(method, DiagKind.ADDITIONAL_BINDING_HAS_NESTED_BINDINGS,
                        "rules in additional_bindings must not specify additional_bindings")
        if rule.selector:
            self._error(method, DiagKind.ADDITIONAL_BINDING_HAS_SELECTOR,
                        "rules in additional_bindings must not specify a selector")


def validate_model(model: SchemaModel, options: Optional[ValidatorOptions] = None,
                   reporter: Optional[DiagReporter] = None) -> DiagReporter:
    """Validate every method of a model and return the reporter holding the results."""
    validator = HttpConfigValidator(reporter, options)
    validator.validate_model(model)
    return validator.reporter
