#!/usr/bin/env python3
# kate: replace-tabs on; indent-width 4;

"""
Schema model for HTTP binding validation.

This module turns a compiled descriptor set (descriptor_pb2.FileDescriptorSet)
into a small, read-only object graph that the binding checks walk:

- **MessageType**: a named message with its fields. Message types reference
  each other through field types, so the graph may contain cycles.
- **Field**: a field of exactly one message, with a TypeRef.
- **TypeRef**: classification of a field type (scalar, message, map,
  repeated) plus the well-known-type tag of message types.
- **Method**: an RPC method with its input/output message, its options and
  the source location used when reporting diagnostics.
- **WellKnownType**: the closed set of google.protobuf types that have a
  special JSON rendering, each with a fixed row of HTTP usage predicates.

Type names are resolved once, when the model is built. A name that cannot
be resolved means the descriptor set is broken and raises SchemaError.
"""

from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

# Imported for its side effect: registers the google.api.http extension on
# MethodOptions, so HttpRule options parse when a descriptor set is read.
from google.api import annotations_pb2  # noqa: F401
from google.protobuf import descriptor_pb2

from .diagnostics import Location

FieldDescriptorProto = descriptor_pb2.FieldDescriptorProto

# Field numbers used in SourceCodeInfo paths.
_FILE_SERVICE_FIELD = 6
_SERVICE_METHOD_FIELD = 2


class SchemaError(ValueError):
    """Raised when the descriptor set violates the schema contract."""


# =============================================================================
# WELL-KNOWN TYPES
# =============================================================================

class WellKnownType(Enum):
    """Message types with a dedicated JSON mapping, keyed by full name."""
    NONE = ''
    ANY = 'google.protobuf.Any'
    DURATION = 'google.protobuf.Duration'
    EMPTY = 'google.protobuf.Empty'
    FIELD_MASK = 'google.protobuf.FieldMask'
    STRUCT = 'google.protobuf.Struct'
    TIMESTAMP = 'google.protobuf.Timestamp'
    VALUE = 'google.protobuf.Value'
    LIST_VALUE = 'google.protobuf.ListValue'
    DOUBLE_VALUE = 'google.protobuf.DoubleValue'
    FLOAT_VALUE = 'google.protobuf.FloatValue'
    INT64_VALUE = 'google.protobuf.Int64Value'
    UINT64_VALUE = 'google.protobuf.UInt64Value'
    INT32_VALUE = 'google.protobuf.Int32Value'
    UINT32_VALUE = 'google.protobuf.UInt32Value'
    BOOL_VALUE = 'google.protobuf.BoolValue'
    STRING_VALUE = 'google.protobuf.StringValue'
    BYTES_VALUE = 'google.protobuf.BytesValue'

    @classmethod
    def for_message(cls, full_name: str) -> 'WellKnownType':
        try:
            return cls(full_name)
        except ValueError:
            return cls.NONE

    def allowed_as_http_request_response(self) -> bool:
        """True when the type renders as a JSON object."""
        return _WKT_RULES[self][0]

    def allowed_as_http_parameter(self) -> bool:
        """True when the type renders as a single query parameter value."""
        return _WKT_RULES[self][1]

    def allowed_as_path_parameter(self) -> bool:
        """True when the type renders as a single path segment value."""
        return _WKT_RULES[self][2]


_WRAPPER_RULE = (False, True, True)

# (request/response, http parameter, path parameter)
_WKT_RULES: Dict[WellKnownType, Tuple[bool, bool, bool]] = {
    WellKnownType.NONE: (True, False, False),
    WellKnownType.ANY: (True, False, False),
    WellKnownType.EMPTY: (True, False, False),
    WellKnownType.STRUCT: (True, False, False),
    WellKnownType.VALUE: (False, False, False),
    WellKnownType.LIST_VALUE: (False, False, False),
    WellKnownType.DURATION: (False, True, True),
    WellKnownType.TIMESTAMP: (False, True, True),
    WellKnownType.FIELD_MASK: (False, True, True),
    WellKnownType.DOUBLE_VALUE: _WRAPPER_RULE,
    WellKnownType.FLOAT_VALUE: _WRAPPER_RULE,
    WellKnownType.INT64_VALUE: _WRAPPER_RULE,
    WellKnownType.UINT64_VALUE: _WRAPPER_RULE,
    WellKnownType.INT32_VALUE: _WRAPPER_RULE,
    WellKnownType.UINT32_VALUE: _WRAPPER_RULE,
    WellKnownType.BOOL_VALUE: _WRAPPER_RULE,
    WellKnownType.STRING_VALUE: _WRAPPER_RULE,
    WellKnownType.BYTES_VALUE: _WRAPPER_RULE,
}


# =============================================================================
# SCHEMA NODES
# =============================================================================

class MessageType:
    """A message type. Fields are attached once every type is known."""

    def __init__(self, full_name: str, descriptor: Optional[descriptor_pb2.DescriptorProto] = None,
                 file_name: str = ''):
        self.full_name = full_name
        self.name = full_name.rsplit('.', 1)[-1]
        self.descriptor = descriptor
        self.file_name = file_name
        self.fields: List['Field'] = []
        self.is_map_entry = bool(descriptor is not None and descriptor.options.map_entry)

    @property
    def well_known_type(self) -> WellKnownType:
        return WellKnownType.for_message(self.full_name)

    def find_field(self, name: str) -> Optional['Field']:
        for field in self.fields:
            if field.name == name:
                return field
        return None

    def __str__(self):
        return self.full_name

    def __repr__(self):
        return f"MessageType({self.full_name})"


class TypeRef:
    """Classification of a field type."""

    def __init__(self, kind: int, repeated: bool = False,
                 message_type: Optional[MessageType] = None):
        self.kind = kind
        self.message_type = message_type
        self._repeated = repeated

    @property
    def is_message(self) -> bool:
        return self.message_type is not None

    @property
    def is_map(self) -> bool:
        return self._repeated and self.message_type is not None and self.message_type.is_map_entry

    @property
    def is_repeated(self) -> bool:
        return self._repeated

    @property
    def well_known_type(self) -> WellKnownType:
        if self.message_type is None:
            return WellKnownType.NONE
        return self.message_type.well_known_type

    def __repr__(self):
        target = self.message_type.full_name if self.message_type else self.kind
        if self.is_map:
            return f"TypeRef(map {target})"
        return f"TypeRef({'repeated ' if self._repeated else ''}{target})"


class Field:
    """A field of a message type."""

    def __init__(self, parent: MessageType, name: str, type_ref: TypeRef, number: int = 0):
        self.parent = parent
        self.name = name
        self.type = type_ref
        self.number = number

    @property
    def full_name(self) -> str:
        return f"{self.parent.full_name}.{self.name}"

    def __str__(self):
        return self.full_name

    def __repr__(self):
        return f"Field({self.full_name}: {self.type!r})"


class Method:
    """An RPC method. Immutable once built."""

    def __init__(self, full_name: str, input_message: MessageType, output_message: MessageType,
                 options: Optional[descriptor_pb2.MethodOptions] = None,
                 location: Optional[Location] = None):
        if input_message is None or output_message is None:
            raise SchemaError(f"Method {full_name} has no resolved input or output type")
        self.full_name = full_name
        self.name = full_name.rsplit('.', 1)[-1]
        self.input_message = input_message
        self.output_message = output_message
        self.options = options if options is not None else descriptor_pb2.MethodOptions()
        self.location = location or Location('', element=full_name)

    @property
    def input_type(self) -> TypeRef:
        return TypeRef(FieldDescriptorProto.TYPE_MESSAGE, message_type=self.input_message)

    @property
    def output_type(self) -> TypeRef:
        return TypeRef(FieldDescriptorProto.TYPE_MESSAGE, message_type=self.output_message)

    def __str__(self):
        return self.full_name

    def __repr__(self):
        return f"Method({self.full_name})"


# =============================================================================
# MODEL
# =============================================================================

def _qualify(package: str, name: str) -> str:
    return f"{package}.{name}" if package else name


def _resolve_location(file_proto: descriptor_pb2.FileDescriptorProto,
                      path: Tuple[int, ...], element: str) -> Location:
    """Find the span of a declaration; spans in SourceCodeInfo are 0-based."""
    for loc in file_proto.source_code_info.location:
        if tuple(loc.path) == path and len(loc.span) >= 3:
            return Location(file_proto.name, loc.span[0] + 1, loc.span[1] + 1, element)
    return Location(file_proto.name, element=element)


class SchemaModel:
    """
    Index of all messages and methods of a descriptor set.

    Attributes:
        messages: Mapping of message full name to MessageType
        methods: All methods, in declaration order
        target_files: Names of the files whose methods get validated
    """

    def __init__(self):
        self.messages: Dict[str, MessageType] = {}
        self.methods: List[Method] = []
        self.target_files: List[str] = []

    @classmethod
    def from_file_descriptor_set(cls, file_set: descriptor_pb2.FileDescriptorSet,
                                 targets: Optional[Iterable[str]] = None) -> 'SchemaModel':
        """
        Build a model from a compiled descriptor set.

        Args:
            file_set: Descriptor set, normally produced with --include_imports
            targets: Names of the files whose methods are of interest. All
                     files are targets when None.

        Returns:
            The populated SchemaModel.
        """
        return cls.from_file_protos(file_set.file, targets)

    @classmethod
    def from_file_protos(cls, files: Iterable[descriptor_pb2.FileDescriptorProto],
                         targets: Optional[Iterable[str]] = None) -> 'SchemaModel':
        files = list(files)
        model = cls()
        wanted = set(targets) if targets is not None else None
        model.target_files = [f.name for f in files if wanted is None or f.name in wanted]

        pending = []
        for file_proto in files:
            for msg_proto in file_proto.message_type:
                model._index_message(file_proto, file_proto.package, msg_proto, pending)

        for message, msg_proto in pending:
            model._attach_fields(message, msg_proto)

        for file_proto in files:
            if file_proto.name in model.target_files:
                model._index_methods(file_proto)
        return model

    def _index_message(self, file_proto, scope: str, msg_proto, pending) -> None:
        full_name = _qualify(scope, msg_proto.name)
        message = MessageType(full_name, msg_proto, file_proto.name)
        self.messages[full_name] = message
        pending.append((message, msg_proto))
        for nested in msg_proto.nested_type:
            self._index_message(file_proto, full_name, nested, pending)

    def _attach_fields(self, message: MessageType, msg_proto) -> None:
        for field_proto in msg_proto.field:
            repeated = field_proto.label == FieldDescriptorProto.LABEL_REPEATED
            target = None
            if field_proto.type in (FieldDescriptorProto.TYPE_MESSAGE, FieldDescriptorProto.TYPE_GROUP):
                target = self.find_message(field_proto.type_name)
                if target is None:
                    raise SchemaError(
                        f"Field {message.full_name}.{field_proto.name} references unknown "
                        f"type {field_proto.type_name}")
            message.fields.append(
                Field(message, field_proto.name, TypeRef(field_proto.type, repeated, target),
                      field_proto.number))

    def _index_methods(self, file_proto) -> None:
        for s_idx, service in enumerate(file_proto.service):
            service_name = _qualify(file_proto.package, service.name)
            for m_idx, method_proto in enumerate(service.method):
                full_name = f"{service_name}.{method_proto.name}"
                input_message = self.find_message(method_proto.input_type)
                output_message = self.find_message(method_proto.output_type)
                if input_message is None or output_message is None:
                    raise SchemaError(
                        f"Method {full_name} references unknown type "
                        f"{method_proto.input_type if input_message is None else method_proto.output_type}")
                path = (_FILE_SERVICE_FIELD, s_idx, _SERVICE_METHOD_FIELD, m_idx)
                self.methods.append(Method(
                    full_name, input_message, output_message, method_proto.options,
                    _resolve_location(file_proto, path, full_name)))

    def find_message(self, name: str) -> Optional[MessageType]:
        """Look up a message by full name; a leading '.' is accepted."""
        return self.messages.get(name.lstrip('.'))

    def get_method(self, full_name: str) -> Method:
        for method in self.methods:
            if method.full_name == full_name:
                return method
        raise KeyError(full_name)
