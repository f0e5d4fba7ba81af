"""
Pytest configuration and shared fixtures for pbhttp tests.

Schemas are built in memory as descriptor_pb2.FileDescriptorProto objects,
the same structures protoc emits, so the tests exercise the real loading
path of SchemaModel without needing protoc.

Key helpers:
    - ProtoBuilder assembles one test file with messages and a service
    - scalar/msg/map_of describe fields for ProtoBuilder.message
    - wkt_files returns the google.protobuf and google.api files messages may use
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import pytest
from google.api import annotations_pb2, http_pb2, httpbody_pb2
from google.protobuf import (any_pb2, descriptor_pb2, duration_pb2, empty_pb2,
                             field_mask_pb2, struct_pb2, timestamp_pb2, wrappers_pb2)

from pbhttp.diagnostics import DiagReporter
from pbhttp.http_validator import HttpConfigValidator
from pbhttp.schema_model import SchemaModel

FieldDescriptorProto = descriptor_pb2.FieldDescriptorProto


# =============================================================================
# Path Constants
# =============================================================================

REPO_ROOT = Path(__file__).parent.parent.absolute()

TESTS_DIR = Path(__file__).parent.absolute()

TEST_PACKAGE = 'test.v1'

TEST_FILE = 'test/v1/test.proto'

TEST_SERVICE = 'TestService'


# =============================================================================
# Schema Builders
# =============================================================================

@dataclass
class FieldDef:
    name: str
    type: int = FieldDescriptorProto.TYPE_STRING
    type_name: Optional[str] = None
    repeated: bool = False
    map_value: Optional['FieldDef'] = None


def scalar(name: str, type: int = FieldDescriptorProto.TYPE_STRING, repeated: bool = False) -> FieldDef:
    return FieldDef(name, type, repeated=repeated)


def msg(name: str, type_name: str, repeated: bool = False) -> FieldDef:
    """A message field. Names outside google.* are taken from the test package."""
    return FieldDef(name, FieldDescriptorProto.TYPE_MESSAGE, type_name, repeated)


def map_of(name: str, value: Optional[FieldDef] = None) -> FieldDef:
    """A map<string, value> field; value defaults to string."""
    return FieldDef(name, FieldDescriptorProto.TYPE_MESSAGE, repeated=True,
                     map_value=value or scalar('value'))


def qualify(type_name: str) -> str:
    if type_name.startswith('google.'):
        return '.' + type_name
    return f'.{TEST_PACKAGE}.{type_name}'


def wkt_files() -> List[descriptor_pb2.FileDescriptorProto]:
    """Descriptor protos of the well-known types and google.api.HttpBody."""
    files = []
    for module in (any_pb2, duration_pb2, empty_pb2, field_mask_pb2, struct_pb2,
                   timestamp_pb2, wrappers_pb2, httpbody_pb2):
        file_proto = descriptor_pb2.FileDescriptorProto()
        module.DESCRIPTOR.CopyToProto(file_proto)
        files.append(file_proto)
    return files


class ProtoBuilder:
    """Builds a single test .proto file with one service."""

    def __init__(self, package: str = TEST_PACKAGE, file_name: str = TEST_FILE):
        self.file = descriptor_pb2.FileDescriptorProto(name=file_name, package=package, syntax='proto3')
        self.file.dependency.append('google/api/annotations.proto')
        self.service = self.file.service.add(name=TEST_SERVICE)

    def message(self, name: str, *fields: FieldDef) -> descriptor_pb2.DescriptorProto:
        msg_proto = self.file.message_type.add(name=name)
        for number, fdef in enumerate(fields, start=1):
            field_proto = msg_proto.field.add(name=fdef.name, number=number, type=fdef.type)
            field_proto.label = (FieldDescriptorProto.LABEL_REPEATED if fdef.repeated
                                 else FieldDescriptorProto.LABEL_OPTIONAL)
            if fdef.map_value is not None:
                entry_name = ''.join(p.capitalize() for p in fdef.name.split('_')) + 'Entry'
                entry = msg_proto.nested_type.add(name=entry_name)
                entry.options.map_entry = True
                entry.field.add(name='key', number=1, type=FieldDescriptorProto.TYPE_STRING,
                                label=FieldDescriptorProto.LABEL_OPTIONAL)
                value = entry.field.add(name='value', number=2, type=fdef.map_value.type,
                                        label=FieldDescriptorProto.LABEL_OPTIONAL)
                if fdef.map_value.type_name:
                    value.type_name = qualify(fdef.map_value.type_name)
                field_proto.type_name = f'.{self.file.package}.{name}.{entry_name}'
            elif fdef.type_name:
                field_proto.type_name = qualify(fdef.type_name)
        return msg_proto

    def method(self, name: str, input_type: str, output_type: str,
               http: Optional[http_pb2.HttpRule] = None) -> str:
        method_proto = self.service.method.add(
            name=name, input_type=qualify(input_type), output_type=qualify(output_type))
        if http is not None:
            method_proto.options.Extensions[annotations_pb2.http].CopyFrom(http)
        return f'{self.file.package}.{TEST_SERVICE}.{name}'

    def add_method_location(self, method_index: int, line: int, column: int) -> None:
        """Attach 0-based source info to a method, the way protoc records it."""
        loc = self.file.source_code_info.location.add()
        loc.path.extend([6, 0, 2, method_index])
        loc.span.extend([line, column, line + 1])

    def file_set(self) -> descriptor_pb2.FileDescriptorSet:
        file_set = descriptor_pb2.FileDescriptorSet()
        file_set.file.extend(wkt_files())
        file_set.file.append(self.file)
        return file_set

    def build(self) -> SchemaModel:
        return SchemaModel.from_file_descriptor_set(self.file_set(), [self.file.name])


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def repo_root() -> Path:
    """Return the repository root directory."""
    return REPO_ROOT


@pytest.fixture
def builder() -> ProtoBuilder:
    """A fresh single-file schema builder."""
    return ProtoBuilder()


@pytest.fixture
def reporter() -> DiagReporter:
    return DiagReporter()


@pytest.fixture
def validator(reporter: DiagReporter) -> HttpConfigValidator:
    """A validator with default options reporting into the reporter fixture."""
    return HttpConfigValidator(reporter)


def kinds(diagnostics) -> list:
    return [d.kind for d in diagnostics]


def messages(diagnostics) -> list:
    return [d.message for d in diagnostics]


# =============================================================================
# Pytest Markers
# =============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests that run protoc"
    )
    config.addinivalue_line(
        "markers", "query: marks tests of the query parameter walk"
    )
    config.addinivalue_line(
        "markers", "path: marks tests of path variable checks"
    )
    config.addinivalue_line(
        "markers", "body: marks tests of body and response checks"
    )
