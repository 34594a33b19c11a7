"""Source templates for generated modules."""
from __future__ import annotations

import base64
from typing import Iterable, List

from google.protobuf.descriptor_pb2 import MethodDescriptorProto, ServiceDescriptorProto


HEADER = "# Generated by protoc-gen-typed-grpc. DO NOT EDIT.\n"


def snake_case(name: str) -> str:
    out: List[str] = []
    for i, ch in enumerate(name):
        if ch.isupper() and i > 0 and (not name[i - 1].isupper() or (i + 1 < len(name) and name[i + 1].islower())):
            out.append("_")
        out.append(ch.lower())
    return "".join(out)


def import_line(module: str) -> str:
    package, _, name = module.rpartition(".")
    if package:
        return f"from {package} import {name}"
    return f"import {name}"


def render_service(
    package: str,
    service: ServiceDescriptorProto,
    type_refs: dict[str, str],
    imports: Iterable[str],
    descriptors_module: str,
) -> str:
    """Handler ABC, ``service()`` factory and typed client for one service.

    ``type_refs`` maps each method's proto input/output type to a Python expression such
    as ``greeter_pb2.HelloRequest``; ``imports`` lists the ``*_pb2`` modules to import.
    """
    name = service.name
    full_service = f"{package}.{name}" if package else name
    methods: List[MethodDescriptorProto] = list(service.method)
    descriptors_alias = descriptors_module.rpartition(".")[2]

    lines: List[str] = [
        HEADER,
        "from __future__ import annotations",
        "",
        "import abc",
        "from typing import Generic, Optional, TypeVar",
        "",
        "from typed_grpc import (",
        "    Client,",
        "    ClientCall,",
        "    Endpoint,",
        "    ErrorCodec,",
        "    Handler,",
        "    Metadata,",
        "    MethodType,",
        "    ProtobufCodec,",
        "    Service,",
        ")",
    ]
    for module in sorted(set(imports)):
        lines.append(import_line(module))
    lines.append(import_line(descriptors_module))
    lines += [
        "",
        "",
        'E = TypeVar("E", bound=BaseException)',
        "",
        f'SERVICE_NAME = "{full_service}"',
        "",
    ]
    for method in methods:
        lines.append(f'{snake_case(method.name).upper()}_METHOD = "{full_service}/{method.name}"')
    lines += ["", ""]

    lines.append(f"class {name}(abc.ABC, Generic[E]):")
    lines.append(f'    """Handlers for {full_service}; failures are raised as ``E``."""')
    for method in methods:
        lines += [
            "",
            "    @abc.abstractmethod",
            f"    async def {snake_case(method.name)}(",
            f"        self, request: {type_refs[method.input_type]}, metadata: Metadata",
            f"    ) -> {type_refs[method.output_type]}: ...",
        ]
    lines += ["", ""]

    lines += [
        f"def service(handler: {name}[E], error_codec: ErrorCodec[E]) -> Service:",
        "    return Service.of(",
    ]
    for method in methods:
        method_name = snake_case(method.name)
        lines += [
            "        Endpoint(",
            f"            method_name={method_name.upper()}_METHOD,",
            "            method_type=MethodType.UNARY,",
            f"            request_codec=ProtobufCodec({type_refs[method.input_type]}),",
            f"            response_codec=ProtobufCodec({type_refs[method.output_type]}),",
            f"            handler=Handler(lambda metadata, request: handler.{method_name}(request, metadata)),",
            "            error_codec=error_codec,",
            "        ),",
        ]
    lines += [
        f"        descriptors={descriptors_alias}.SERIALIZED_FILES,",
        "    )",
        "",
        "",
        f"class {name}Client(Generic[E]):",
        "    def __init__(self, client: Client, error_codec: ErrorCodec[E]) -> None:",
        "        self._client = client",
        "        self._error_codec = error_codec",
    ]
    for method in methods:
        method_name = snake_case(method.name)
        input_type = type_refs[method.input_type]
        output_type = type_refs[method.output_type]
        lines += [
            "",
            f"    async def {method_name}(",
            "        self,",
            f"        request: {input_type},",
            "        *,",
            "        metadata: Optional[Metadata] = None,",
            "        timeout: Optional[float] = None,",
            f"    ) -> {output_type}:",
            "        call = ClientCall(",
            f"            method_name={method_name.upper()}_METHOD,",
            f"            request_codec=ProtobufCodec({input_type}),",
            f"            response_codec=ProtobufCodec({output_type}),",
            "            error_codec=self._error_codec,",
            "        )",
            "        return await self._client.unary(call, request, metadata=metadata, timeout=timeout)",
        ]
    return "\n".join(lines) + "\n"


def render_descriptors(full_service: str, serialized_files: Iterable[bytes]) -> str:
    """Module embedding the serialized file descriptors a service needs for reflection."""
    lines = [
        HEADER,
        "import base64",
        "",
        f'SERVICE_NAME = "{full_service}"',
        "",
        "_ENCODED = (",
    ]
    for data in serialized_files:
        lines.append(f'    "{base64.b64encode(data).decode("ascii")}",')
    lines += [
        ")",
        "",
        "SERIALIZED_FILES = tuple(base64.b64decode(item) for item in _ENCODED)",
    ]
    return "\n".join(lines) + "\n"
