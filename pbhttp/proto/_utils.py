import os
import subprocess
import sys


def has_grpcio_protoc(verbose=False):
    '''Checks if grpcio-tools protoc is installed'''
    try:
        import grpc_tools.protoc
    except ImportError:
        if verbose:
            sys.stderr.write("Failed to import grpc_tools: %s\n" % sys.exc_info()[1])
        return False

    return True


def get_grpc_tools_proto_path():
    import importlib.resources as ir
    with ir.as_file(ir.files('grpc_tools') / '_proto') as path:
        return str(path)


def get_googleapis_proto_path():
    '''Directory holding google/api/*.proto from googleapis-common-protos.'''
    from google.api import http_pb2
    return os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(http_pb2.__file__))))


def invoke_protoc(argv):
    # type: (list) -> int
    """
    Invoke protoc.

    This routine will use grpcio-provided protoc if it exists,
    using system-installed protoc as a fallback.

    Args:
        argv: protoc CLI invocation, first item must be 'protoc'
    """

    # Add current directory to include path if nothing else is specified
    if not [x for x in argv if x.startswith('-I')]:
        argv.append("-I.")

    # Add the googleapis include path so google/api/annotations.proto resolves.
    argv.append("-I" + get_googleapis_proto_path())

    if has_grpcio_protoc():
        import grpc_tools.protoc as protoc
        argv.append("-I" + get_grpc_tools_proto_path())
        return protoc.main(argv)
    else:
        return subprocess.call(argv)


def print_versions():
    try:
        if has_grpcio_protoc(verbose=True):
            import grpc_tools.protoc
            sys.stderr.write("Using grpcio-tools protoc from " + grpc_tools.protoc.__file__ + "\n")
        else:
            sys.stderr.write("Using protoc from system path\n")
            invoke_protoc(['protoc', '--version'])
    except Exception as e:
        sys.stderr.write("Failed to determine protoc version: " + str(e) + "\n")

    try:
        import google.protobuf
        sys.stderr.write("protobuf version " + google.protobuf.__version__ + "\n")
    except Exception as e:
        sys.stderr.write("Failed to determine protobuf version: " + str(e) + "\n")
