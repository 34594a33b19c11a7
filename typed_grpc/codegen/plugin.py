"""protoc plugin emitting typed service modules.

Usage::

    protoc --plugin=protoc-gen-typed-grpc=$(which protoc-gen-typed-grpc) \\
        --typed-grpc_out=. greeter.proto

For each service two modules are written next to the ``*_pb2`` module of its proto
file: ``<service>_typed_grpc.py`` with the handler ABC, ``service()`` factory and typed
client, and ``<service>_descriptors.py`` with the serialized file descriptors the
service needs for reflection.
"""
from __future__ import annotations

import sys
from typing import Dict, Iterable, List, Tuple

from google.protobuf.compiler import plugin_pb2
from google.protobuf.descriptor_pb2 import DescriptorProto, FileDescriptorProto, ServiceDescriptorProto

from typed_grpc.codegen.templates import render_descriptors, render_service, snake_case
from typed_grpc.core.logging_config import configure_logging, get_logger


logger = get_logger(__name__)

STREAMING_NOT_SUPPORTED = "Streaming RPCs are not supported by the typed-grpc code generator"


def pb2_module(proto_name: str) -> str:
    """``foo/bar-baz.proto`` -> ``foo.bar_baz_pb2``, as protoc's python plugin names it."""
    base = proto_name[: -len(".proto")] if proto_name.endswith(".proto") else proto_name
    return base.replace("-", "_").replace("/", ".") + "_pb2"


def _module_dir(proto_name: str) -> str:
    directory, _, _ = proto_name.rpartition("/")
    return directory


def _has_streaming(service: ServiceDescriptorProto) -> bool:
    return any(m.client_streaming or m.server_streaming for m in service.method)


def _index_messages(
    index: Dict[str, Tuple[str, str]],
    module: str,
    scope: str,
    path: str,
    messages: Iterable[DescriptorProto],
) -> None:
    for message in messages:
        full_name = f"{scope}.{message.name}"
        attr = f"{path}.{message.name}" if path else message.name
        index[full_name] = (module, attr)
        _index_messages(index, module, full_name, attr, message.nested_type)


def build_type_index(files: Iterable[FileDescriptorProto]) -> Dict[str, Tuple[str, str]]:
    """Fully-qualified message name (``.pkg.Msg``) -> (pb2 module, attribute path)."""
    index: Dict[str, Tuple[str, str]] = {}
    for file in files:
        scope = f".{file.package}" if file.package else ""
        _index_messages(index, pb2_module(file.name), scope, "", file.message_type)
    return index


def _resolve(
    type_name: str,
    index: Dict[str, Tuple[str, str]],
    file: FileDescriptorProto,
) -> Tuple[str, str]:
    if type_name in index:
        return index[type_name]
    # unresolved names are assumed to live in the file's own pb2 module
    return pb2_module(file.name), type_name.rpartition(".")[2]


def _dependency_order(
    file: FileDescriptorProto, by_name: Dict[str, FileDescriptorProto]
) -> List[FileDescriptorProto]:
    ordered: List[FileDescriptorProto] = []
    visited: set[str] = set()

    def visit(current: FileDescriptorProto) -> None:
        if current.name in visited:
            return
        visited.add(current.name)
        for dependency in current.dependency:
            if dependency in by_name:
                visit(by_name[dependency])
        ordered.append(current)

    visit(file)
    return ordered


def _generate_service(
    file: FileDescriptorProto,
    service: ServiceDescriptorProto,
    index: Dict[str, Tuple[str, str]],
    by_name: Dict[str, FileDescriptorProto],
) -> List[plugin_pb2.CodeGeneratorResponse.File]:
    directory = _module_dir(file.name)
    prefix = f"{directory}/" if directory else ""
    base = snake_case(service.name)
    package_module = directory.replace("/", ".")
    descriptors_module = f"{package_module}.{base}_descriptors" if package_module else f"{base}_descriptors"

    type_refs: Dict[str, str] = {}
    imports: List[str] = []
    for method in service.method:
        for type_name in (method.input_type, method.output_type):
            module, attr = _resolve(type_name, index, file)
            imports.append(module)
            type_refs[type_name] = f"{module.rpartition('.')[2]}.{attr}"

    full_service = f"{file.package}.{service.name}" if file.package else service.name
    serialized = [f.SerializeToString() for f in _dependency_order(file, by_name)]
    return [
        plugin_pb2.CodeGeneratorResponse.File(
            name=f"{prefix}{base}_typed_grpc.py",
            content=render_service(file.package, service, type_refs, imports, descriptors_module),
        ),
        plugin_pb2.CodeGeneratorResponse.File(
            name=f"{prefix}{base}_descriptors.py",
            content=render_descriptors(full_service, serialized),
        ),
    ]


def generate(request: plugin_pb2.CodeGeneratorRequest) -> plugin_pb2.CodeGeneratorResponse:
    response = plugin_pb2.CodeGeneratorResponse()
    files = list(request.proto_file)
    targets = set(request.file_to_generate) or {f.name for f in files}
    selected = [f for f in files if f.name in targets]

    if any(_has_streaming(service) for f in selected for service in f.service):
        response.error = STREAMING_NOT_SUPPORTED
        return response

    index = build_type_index(files)
    by_name = {f.name: f for f in files}
    for file in selected:
        for service in file.service:
            response.file.extend(_generate_service(file, service, index, by_name))
    return response


def main() -> None:
    # stdout carries the CodeGeneratorResponse
    configure_logging(stream=sys.stderr)
    request = plugin_pb2.CodeGeneratorRequest.FromString(sys.stdin.buffer.read())
    response = generate(request)
    if response.error:
        logger.error("codegen_rejected", error=response.error)
    sys.stdout.buffer.write(response.SerializeToString())


if __name__ == "__main__":
    main()
