"""Validation of google.api.http bindings on protobuf RPC methods."""

from .config import ValidatorOptions
from .diagnostics import DiagKind, DiagReporter, Diagnostic, Location, Severity
from .field_selector import BindingError, FieldSelector
from .http_binding import HttpBinding, MethodKind, binding_for_method
from .http_validator import HttpConfigValidator, validate_model
from .schema_model import Field, MessageType, Method, SchemaError, SchemaModel, TypeRef, WellKnownType

__version__ = '0.1.0'
