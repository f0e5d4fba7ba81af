#!/usr/bin/env python3
# kate: replace-tabs on; indent-width 4;

"""
pbhttp-check: validate the google.api.http bindings of RPC methods.

Usage
-----
  pbhttp-check -I protos protos/library/v1/library.proto

  pbhttp-check --descriptor-set library.pb \
    --allow-repeated-field my.api.Query.filters

Inputs are compiled with protoc (grpcio-tools when installed). A descriptor
set built elsewhere can be passed with --descriptor-set instead; build it
with --include_imports and --include_source_info for useful locations.

Exit status: 0 when every binding is valid, 1 when errors were reported,
2 when the inputs could not be loaded or a binding names an unknown
field. Other methods are still validated in that case.
"""

import argparse
import sys
from typing import List, Optional

from .config import ValidatorOptions
from .diagnostics import DiagReporter
from .field_selector import BindingError
from .http_validator import HttpConfigValidator
from .proto import ProtocError, build_descriptor_set, load_descriptor_set
from .schema_model import SchemaError, SchemaModel


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog='pbhttp-check',
        description='Validate google.api.http bindings of protobuf RPC methods.')
    ap.add_argument('protos', nargs='*', help='.proto files to validate')
    ap.add_argument('-I', '--include', dest='includes', action='append', default=[],
                    help='Include path for proto files (repeatable)')
    ap.add_argument('--descriptor-set', dest='descriptor_set', default=None,
                    help='Validate a prebuilt FileDescriptorSet instead of compiling protos')
    ap.add_argument('--target', dest='targets', action='append', default=None,
                    help='With --descriptor-set: only validate methods of this file (repeatable)')
    ap.add_argument('--allow-repeated-field', dest='allowed_repeated', action='append', default=[],
                    help='Full name of a repeated message field allowed in query parameters (repeatable)')
    ap.add_argument('--verbose', action='store_true', help='Verbose logging')
    return ap


def load_model(args) -> SchemaModel:
    if args.descriptor_set:
        file_set = load_descriptor_set(args.descriptor_set)
        return SchemaModel.from_file_descriptor_set(file_set, args.targets)
    file_set, targets = build_descriptor_set(args.protos, args.includes, verbose=args.verbose)
    return SchemaModel.from_file_descriptor_set(file_set, targets)


def main(argv: Optional[List[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)

    if not args.protos and not args.descriptor_set:
        ap.print_usage(sys.stderr)
        print("No .proto files or descriptor set given.", file=sys.stderr)
        return 2

    options = ValidatorOptions.from_env().with_allowed_repeated_fields(args.allowed_repeated)

    try:
        model = load_model(args)
    except (OSError, ProtocError, SchemaError) as e:
        print(f"Error loading protos: {e}", file=sys.stderr)
        return 2

    if args.verbose:
        for name in model.target_files:
            print(f"[+] target: {name}", file=sys.stderr)
        print(f"[+] {len(model.methods)} method(s) to check", file=sys.stderr)

    reporter = DiagReporter()
    validator = HttpConfigValidator(reporter, options)
    binding_failures = 0
    for method in model.methods:
        try:
            validator.run(method)
        except BindingError as e:
            print(f"{method.location}: error: {e}", file=sys.stderr)
            binding_failures += 1

    for diagnostic in reporter.diagnostics:
        print(diagnostic, file=sys.stderr)

    if args.verbose:
        print(f"[+] {reporter.error_count()} error(s)", file=sys.stderr)
        if binding_failures:
            print(f"[X] {binding_failures} binding(s) could not be resolved", file=sys.stderr)
    if binding_failures:
        return 2
    return reporter.exit_code()


if __name__ == '__main__':
    raise SystemExit(main())
