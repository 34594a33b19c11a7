from google.protobuf.compiler import plugin_pb2
from google.protobuf.descriptor_pb2 import FileDescriptorProto

from typed_grpc.codegen.plugin import build_type_index, generate, pb2_module
from typed_grpc.codegen.templates import snake_case


def make_proto(package, service_name, method_name, input_type, output_type, name="test.proto", streaming=False):
    proto = FileDescriptorProto(name=name, package=package)
    service = proto.service.add(name=service_name)
    service.method.add(
        name=method_name,
        input_type=input_type,
        output_type=output_type,
        client_streaming=streaming,
        server_streaming=False,
    )
    return proto


def make_request(*files, targets=()):
    return plugin_pb2.CodeGeneratorRequest(proto_file=list(files), file_to_generate=list(targets))


def file_named(response, suffix):
    return next(f for f in response.file if f.name.endswith(suffix))


def test_generates_service_and_descriptor_modules():
    response = generate(make_request(make_proto("example", "TestService", "DoSomething", "Request", "Response")))

    assert not response.error
    assert [f.name for f in response.file] == ["test_service_typed_grpc.py", "test_service_descriptors.py"]


def test_service_module_has_typed_handler_class():
    proto = make_proto("example", "MyService", "Execute", "Input", "Output")
    content = file_named(generate(make_request(proto)), "_typed_grpc.py").content

    assert "class MyService(abc.ABC, Generic[E]):" in content
    assert "async def execute(" in content
    assert "self, request: test_pb2.Input, metadata: Metadata" in content
    assert ") -> test_pb2.Output: ..." in content
    assert 'EXECUTE_METHOD = "example.MyService/Execute"' in content
    compile(content, "my_service_typed_grpc.py", "exec")


def test_service_module_has_factory_and_client():
    proto = make_proto("example", "Calculator", "Add", "Numbers", "Result")
    content = file_named(generate(make_request(proto)), "_typed_grpc.py").content

    assert "def service(handler: Calculator[E], error_codec: ErrorCodec[E]) -> Service:" in content
    assert "method_type=MethodType.UNARY" in content
    assert "descriptors=calculator_descriptors.SERIALIZED_FILES" in content
    assert "class CalculatorClient(Generic[E]):" in content
    assert "import test_pb2" in content


def test_descriptor_module_embeds_file_descriptors():
    proto = make_proto("example", "Service", "Method", "In", "Out")
    content = file_named(generate(make_request(proto)), "_descriptors.py").content

    assert "_ENCODED = (" in content
    namespace = {}
    exec(compile(content, "service_descriptors.py", "exec"), namespace)
    assert namespace["SERVICE_NAME"] == "example.Service"
    assert namespace["SERIALIZED_FILES"] == (proto.SerializeToString(),)


def test_descriptors_list_dependencies_first():
    common = FileDescriptorProto(name="common/types.proto", package="common")
    common.message_type.add(name="Empty")
    api = make_proto("api", "Ping", "Ping", ".common.Empty", ".common.Empty", name="api/ping.proto")
    api.dependency.append("common/types.proto")

    response = generate(make_request(common, api, targets=["api/ping.proto"]))
    assert [f.name for f in response.file] == ["api/ping_typed_grpc.py", "api/ping_descriptors.py"]

    service = file_named(response, "_typed_grpc.py").content
    assert "from common import types_pb2" in service
    assert "from api import ping_descriptors" in service
    assert "request: types_pb2.Empty" in service

    namespace = {}
    exec(file_named(response, "_descriptors.py").content, namespace)
    assert namespace["SERIALIZED_FILES"] == (common.SerializeToString(), api.SerializeToString())


def test_rejects_streaming_rpcs():
    proto = make_proto("example", "StreamingService", "StreamData", "Input", "Output", streaming=True)
    response = generate(make_request(proto))

    assert "Streaming RPCs are not supported" in response.error
    assert len(response.file) == 0


def test_only_requested_files_are_generated():
    first = make_proto("a", "First", "Call", "Req", "Res", name="a.proto")
    second = make_proto("b", "Second", "Call", "Req", "Res", name="b.proto", streaming=True)
    response = generate(make_request(first, second, targets=["a.proto"]))

    assert not response.error
    assert {f.name for f in response.file} == {"first_typed_grpc.py", "first_descriptors.py"}


def test_type_index_resolves_nested_messages():
    proto = FileDescriptorProto(name="pkg/outer.proto", package="pkg")
    outer = proto.message_type.add(name="Outer")
    outer.nested_type.add(name="Inner")

    index = build_type_index([proto])
    assert index[".pkg.Outer"] == ("pkg.outer_pb2", "Outer")
    assert index[".pkg.Outer.Inner"] == ("pkg.outer_pb2", "Outer.Inner")


def test_naming_helpers():
    assert pb2_module("foo/bar-baz.proto") == "foo.bar_baz_pb2"
    assert snake_case("SayHello") == "say_hello"
    assert snake_case("HTTPServer") == "http_server"
    assert snake_case("GetURL") == "get_url"
