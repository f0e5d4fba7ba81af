"""
Tests for the recursive query parameter walk.

These cover maps, repeated messages, the repeated-field allow-list and
cycle detection over self-referencing and mutually referencing messages.
"""

import pytest
from google.api import http_pb2

from conftest import kinds, map_of, messages, msg, scalar
from pbhttp.config import ValidatorOptions
from pbhttp.diagnostics import DiagKind, DiagReporter
from pbhttp.http_validator import HttpConfigValidator

CYCLIC = DiagKind.CYCLIC_PARAM_REFERENCE
MAP = DiagKind.MAP_NOT_ALLOWED_AS_PARAM
REPEATED = DiagKind.REPEATED_MESSAGE_NOT_ALLOWED_AS_PARAM


def _check(builder, validator, input_type, rule=None, name='GetThing'):
    rule = rule or http_pb2.HttpRule(get='/v1/things')
    builder.method(name, input_type, 'Thing', rule)
    method = builder.build().get_method(f'test.v1.TestService.{name}')
    return validator.check(method)


@pytest.fixture
def thing(builder):
    builder.message('Thing', scalar('name'))
    return builder


@pytest.mark.query
class TestCycles:

    def test_self_referencing_filter(self, thing, validator):
        """GetThing(name, filter) where FilterMsg refers to itself."""
        thing.message('FilterMsg', scalar('expr'), msg('filter', 'FilterMsg'))
        thing.message('GetThingRequest', scalar('name'), msg('filter', 'FilterMsg'))
        diags = _check(thing, validator, 'GetThingRequest')
        assert kinds(diags) == [CYCLIC]
        assert messages(diags) == [
            "cyclic message field 'test.v1.FilterMsg.filter' referred to by message "
            "'test.v1.GetThingRequest' in method 'test.v1.TestService.GetThing' cannot be mapped "
            "as an HTTP parameter."]

    def test_mutual_recursion(self, thing, validator):
        thing.message('A', msg('b', 'B'))
        thing.message('B', msg('a', 'A'), scalar('x'))
        thing.message('Req', msg('a', 'A'))
        diags = _check(thing, validator, 'Req')
        assert kinds(diags) == [CYCLIC]
        assert "'test.v1.B.a'" in diags[0].message

    def test_one_report_per_cyclic_path(self, thing, validator):
        thing.message('Node', msg('next', 'Node'))
        thing.message('Req', msg('first', 'Node'), msg('second', 'Node'), scalar('name'))
        diags = _check(thing, validator, 'Req')
        assert kinds(diags) == [CYCLIC, CYCLIC]

    def test_cycle_detected_before_repeated(self, thing, validator):
        thing.message('Tree', scalar('label'), msg('children', 'Tree', repeated=True))
        thing.message('Req', msg('root', 'Tree'))
        diags = _check(thing, validator, 'Req')
        assert kinds(diags) == [CYCLIC]
        assert "'test.v1.Tree.children'" in diags[0].message

    def test_shared_type_on_sibling_branches_is_not_a_cycle(self, thing, validator):
        thing.message('Shared', scalar('x'))
        thing.message('Req', msg('left', 'Shared'), msg('right', 'Shared'))
        assert _check(thing, validator, 'Req') == []

    def test_diamond_is_not_a_cycle(self, thing, validator):
        thing.message('Leaf', scalar('x'))
        thing.message('Left', msg('leaf', 'Leaf'))
        thing.message('Right', msg('leaf', 'Leaf'))
        thing.message('Req', msg('left', 'Left'), msg('right', 'Right'))
        assert _check(thing, validator, 'Req') == []

    def test_visited_set_is_fresh_per_binding(self, thing, validator):
        thing.message('FilterMsg', msg('filter', 'FilterMsg'))
        thing.message('Req', scalar('name'), msg('filter', 'FilterMsg'))
        rule = http_pb2.HttpRule(get='/v1/things')
        rule.additional_bindings.add(get='/v2/things')
        diags = _check(thing, validator, 'Req', rule)
        assert kinds(diags) == [CYCLIC, CYCLIC]


@pytest.mark.query
class TestMapsAndRepeated:

    def test_map_field(self, thing, validator):
        thing.message('ListRequest', scalar('parent'), map_of('labels'))
        diags = _check(thing, validator, 'ListRequest', http_pb2.HttpRule(get='/v1/{parent}'))
        assert kinds(diags) == [MAP]
        assert messages(diags) == [
            "map field 'test.v1.ListRequest.labels' referred to by message 'test.v1.ListRequest' "
            "cannot be mapped as an HTTP parameter."]

    def test_map_values_are_not_walked(self, thing, validator):
        thing.message('Inner', map_of('more'))
        thing.message('ListRequest', map_of('labels', msg('value', 'Inner')))
        diags = _check(thing, validator, 'ListRequest')
        assert kinds(diags) == [MAP]

    def test_repeated_scalar_is_legal(self, thing, validator):
        thing.message('ListRequest', scalar('ids', type=5, repeated=True))
        assert _check(thing, validator, 'ListRequest') == []

    def test_repeated_message(self, thing, validator):
        thing.message('Filter', scalar('key'))
        thing.message('ListRequest', msg('filters', 'Filter', repeated=True))
        diags = _check(thing, validator, 'ListRequest')
        assert kinds(diags) == [REPEATED]
        assert messages(diags) == [
            "repeated message field 'test.v1.ListRequest.filters' referred to by message "
            "'test.v1.ListRequest' cannot be mapped as an HTTP parameter."]

    def test_repeated_message_is_still_walked(self, thing, validator):
        thing.message('Filter', map_of('labels'))
        thing.message('ListRequest', msg('filters', 'Filter', repeated=True))
        diags = _check(thing, validator, 'ListRequest')
        assert kinds(diags) == [REPEATED, MAP]

    def test_nested_map_is_reported(self, thing, validator):
        thing.message('Options', scalar('verbose', type=8), map_of('extra'))
        thing.message('ListRequest', msg('options', 'Options'))
        diags = _check(thing, validator, 'ListRequest')
        assert messages(diags) == [
            "map field 'test.v1.Options.extra' referred to by message 'test.v1.ListRequest' "
            "cannot be mapped as an HTTP parameter."]

    def test_struct_parameter_reaches_its_map(self, thing, validator):
        thing.message('ListRequest', msg('filter', 'google.protobuf.Struct'))
        diags = _check(thing, validator, 'ListRequest')
        assert kinds(diags) == [MAP]
        assert "'google.protobuf.Struct.fields'" in diags[0].message


@pytest.mark.query
class TestWellKnownParameters:

    def test_scalar_like_well_known_types(self, thing, validator):
        thing.message('ListRequest', msg('count', 'google.protobuf.Int32Value'),
                      msg('since', 'google.protobuf.Timestamp'),
                      msg('ttl', 'google.protobuf.Duration'),
                      msg('mask', 'google.protobuf.FieldMask'),
                      msg('names', 'google.protobuf.StringValue', repeated=True))
        assert _check(thing, validator, 'ListRequest') == []

    def test_http_body_extensions_allowed_by_default(self, thing, validator):
        thing.message('UploadRequest', scalar('name'), msg('body', 'google.api.HttpBody'))
        assert _check(thing, validator, 'UploadRequest') == []

    def test_http_body_extensions_without_allow_list(self, thing):
        thing.message('UploadRequest', scalar('name'), msg('body', 'google.api.HttpBody'))
        validator = HttpConfigValidator(DiagReporter(), ValidatorOptions(frozenset()))
        diags = _check(thing, validator, 'UploadRequest')
        assert kinds(diags) == [REPEATED]
        assert "'google.api.HttpBody.extensions'" in diags[0].message

    def test_custom_allow_list_entry(self, thing):
        thing.message('Filter', scalar('key'))
        thing.message('ListRequest', msg('filters', 'Filter', repeated=True))
        options = ValidatorOptions().with_allowed_repeated_fields(['test.v1.ListRequest.filters'])
        validator = HttpConfigValidator(DiagReporter(), options)
        assert _check(thing, validator, 'ListRequest') == []


@pytest.mark.query
class TestParameterSelection:

    def test_body_fields_are_not_parameters(self, thing, validator):
        thing.message('Filter', scalar('key'))
        thing.message('Req', scalar('name'), msg('filters', 'Filter', repeated=True))
        rule = http_pb2.HttpRule(post='/v1/{name}', body='*')
        assert _check(thing, validator, 'Req', rule) == []

    def test_only_terminal_fields_are_walked(self, thing, validator):
        thing.message('Item', scalar('id'), map_of('labels'))
        thing.message('Req', msg('item', 'Item'))
        diags = _check(thing, validator, 'Req', http_pb2.HttpRule(get='/v1/{item.id}'))
        assert messages(diags) == [
            "map field 'test.v1.Item.labels' referred to by message 'test.v1.Req' "
            "cannot be mapped as an HTTP parameter."]
