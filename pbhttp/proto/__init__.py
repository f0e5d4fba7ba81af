'''This module compiles .proto files into descriptor sets for validation.'''

import os
import os.path
import sys
import traceback
from tempfile import TemporaryDirectory

from google.protobuf import descriptor_pb2

from ._utils import has_grpcio_protoc, invoke_protoc, print_versions

__all__ = ['ProtocError', 'build_descriptor_set', 'load_descriptor_set',
           'has_grpcio_protoc', 'invoke_protoc', 'print_versions']

ENV_PROTOC_TEMP_DIR = 'PBHTTP_PROTOC_TEMP_DIR'


class ProtocError(RuntimeError):
    '''protoc failed to compile the inputs.'''


def load_descriptor_set(path):
    '''Read a serialized FileDescriptorSet from disk.'''
    file_set = descriptor_pb2.FileDescriptorSet()
    with open(path, 'rb') as f:
        file_set.ParseFromString(f.read())
    return file_set


def build_descriptor_set(protosrc, include_paths=(), verbose=False):
    '''Compile one or more .proto files into a FileDescriptorSet.

    Imports are included and source info is kept, so diagnostics can point
    at file:line:column. protosrc can be a single path or a list of paths.

    Returns a (FileDescriptorSet, target file names) tuple, where the target
    names are the inputs as protoc names them (relative to an include path).
    '''
    if isinstance(protosrc, (list, tuple)):
        sources = list(protosrc)
    else:
        sources = [protosrc]

    search_paths = [os.path.abspath(p) for p in include_paths]
    for src in sources:
        src_dir = os.path.dirname(os.path.abspath(src))
        if not any(os.path.abspath(src).startswith(p + os.sep) for p in search_paths):
            search_paths.append(src_dir)

    tmpdir = os.getenv(ENV_PROTOC_TEMP_DIR)
    if tmpdir is not None and not os.path.isdir(tmpdir):
        tmpdir = None # Use system-wide temp dir

    with TemporaryDirectory(prefix='pbhttp-', dir=tmpdir) as workdir:
        desc_file = os.path.join(workdir, 'descriptor.pb')
        cmd = ['protoc', '--descriptor_set_out=' + desc_file,
               '--include_imports', '--include_source_info']
        cmd += ['-I' + p for p in search_paths]
        cmd += [os.path.abspath(s) for s in sources]

        if verbose:
            sys.stderr.write("[+] running: " + ' '.join(cmd) + "\n")

        try:
            status = invoke_protoc(cmd)
        except OSError:
            sys.stderr.write(traceback.format_exc() + "\n")
            print_versions()
            raise ProtocError("Failed to run protoc: " + ' '.join(cmd))

        if status != 0:
            raise ProtocError(f"protoc failed with status {status}")

        file_set = load_descriptor_set(desc_file)

    targets = []
    for src in sources:
        abs_src = os.path.abspath(src)
        for path in search_paths:
            if abs_src.startswith(path + os.sep):
                targets.append(os.path.relpath(abs_src, path).replace(os.sep, '/'))
                break
    return file_set, targets
