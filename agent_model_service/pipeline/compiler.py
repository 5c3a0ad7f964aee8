"""
Compile an unpacked proto tree into its JSON interface description.

protoc turns `<service>.proto` (imports included) into a
`FileDescriptorSet`, which is then rendered in protobufjs reflection JSON,
the shape `protobuf.Root.fromJSON` loads:

    {"nested": {"<package>": {"nested": {
        "<Message>": {"fields": {"<name>": {"type": ..., "id": ...}}},
        "<Enum>": {"values": {"<NAME>": 0}},
        "<Service>": {"methods": {"<name>": {"requestType": ..., "responseType": ...}}}}}}}
"""

from __future__ import annotations

import asyncio
import json
import logging
import tempfile
import threading
from importlib import resources
from pathlib import Path
from typing import Any, Dict

from google.protobuf import descriptor_pb2
from grpc_tools import protoc

from ..errors import InternalError
from ..registry.filesystem_store import FilesystemModelCache

LOGGER = logging.getLogger(__name__)

PROTO_EXTENSION = ".proto"

FieldDescriptorProto = descriptor_pb2.FieldDescriptorProto

# TYPE_FLOAT -> "float", TYPE_SINT64 -> "sint64", ...
_SCALAR_TYPES = {value: name[len("TYPE_"):].lower() for name, value in FieldDescriptorProto.Type.items()}
_NAMED_TYPES = (FieldDescriptorProto.TYPE_MESSAGE, FieldDescriptorProto.TYPE_ENUM, FieldDescriptorProto.TYPE_GROUP)

# protoc runs in-process; one compilation at a time.
_PROTOC_LOCK = threading.Lock()


def _well_known_types_path() -> str:
    return str(resources.files("grpc_tools") / "_proto")


def _type_ref(type_name: str, package: str) -> str:
    """Fully qualified `.pkg.Outer.Inner` -> `Outer.Inner` inside `pkg`, `other.pkg.Type` outside it."""
    name = type_name.lstrip(".")
    if package and name.startswith(package + "."):
        return name[len(package) + 1:]
    return name


def _field_type(field: FieldDescriptorProto, package: str) -> str:
    if field.type in _NAMED_TYPES:
        return _type_ref(field.type_name, package)
    return _SCALAR_TYPES[field.type]


def _field_json(field: FieldDescriptorProto, package: str, map_entries: Dict[str, Any]) -> Dict[str, Any]:
    entry = map_entries.get(field.type_name)
    if entry is not None and field.label == FieldDescriptorProto.LABEL_REPEATED:
        key, value = entry.field[0], entry.field[1]
        return {"keyType": _field_type(key, package), "type": _field_type(value, package), "id": field.number}

    result: Dict[str, Any] = {}
    if field.label == FieldDescriptorProto.LABEL_REPEATED:
        result["rule"] = "repeated"
    elif field.label == FieldDescriptorProto.LABEL_REQUIRED:
        result["rule"] = "required"
    result["type"] = _field_type(field, package)
    result["id"] = field.number
    if field.proto3_optional:
        result["options"] = {"proto3_optional": True}
    return result


def _enum_json(enum: descriptor_pb2.EnumDescriptorProto) -> Dict[str, Any]:
    return {"values": {value.name: value.number for value in enum.value}}


def _message_json(message: descriptor_pb2.DescriptorProto, scope: str, package: str) -> Dict[str, Any]:
    full_name = f"{scope}.{message.name}" if scope else message.name
    # Map fields come out of protoc as repeated nested `*Entry` messages.
    map_entries = {f".{full_name}.{nested.name}": nested for nested in message.nested_type if nested.options.map_entry}

    result: Dict[str, Any] = {}
    oneofs: Dict[str, Any] = {}
    for field in message.field:
        if field.HasField("oneof_index"):
            oneof_name = message.oneof_decl[field.oneof_index].name
            oneofs.setdefault(oneof_name, {"oneof": []})["oneof"].append(field.name)
    if oneofs:
        result["oneofs"] = oneofs

    result["fields"] = {field.name: _field_json(field, package, map_entries) for field in message.field}

    reserved = [[r.start, r.end - 1] for r in message.reserved_range] + list(message.reserved_name)
    if reserved:
        result["reserved"] = reserved

    nested: Dict[str, Any] = {
        child.name: _message_json(child, full_name, package)
        for child in message.nested_type
        if not child.options.map_entry
    }
    nested.update({enum.name: _enum_json(enum) for enum in message.enum_type})
    if nested:
        result["nested"] = nested
    return result


def _service_json(service: descriptor_pb2.ServiceDescriptorProto, package: str) -> Dict[str, Any]:
    methods: Dict[str, Any] = {}
    for method in service.method:
        entry: Dict[str, Any] = {
            "requestType": _type_ref(method.input_type, package),
            "responseType": _type_ref(method.output_type, package),
        }
        if method.client_streaming:
            entry["requestStream"] = True
        if method.server_streaming:
            entry["responseStream"] = True
        methods[method.name] = entry
    return {"methods": methods}


def descriptor_set_to_json(descriptor_set: descriptor_pb2.FileDescriptorSet) -> Dict[str, Any]:
    """Merge every file of `descriptor_set` into one protobufjs root, nested by package."""
    root: Dict[str, Any] = {}
    for proto_file in descriptor_set.file:
        package = proto_file.package
        members: Dict[str, Any] = {}
        for message in proto_file.message_type:
            members[message.name] = _message_json(message, package, package)
        for enum in proto_file.enum_type:
            members[enum.name] = _enum_json(enum)
        for service in proto_file.service:
            members[service.name] = _service_json(service, package)
        if not members:
            continue

        namespace = root
        for part in filter(None, package.split(".")):
            namespace = namespace.setdefault("nested", {}).setdefault(part, {})
        namespace.setdefault("nested", {}).update(members)
    return root


def compile_proto(proto_path: Path, service_name: str) -> dict:
    """Run protoc on `<proto_path>/<service_name>.proto` and return its protobufjs JSON."""
    proto_file = proto_path / f"{service_name}{PROTO_EXTENSION}"
    if not proto_file.is_file():
        raise InternalError(f"Service {service_name} has no {proto_file.name} at the root of its model archive")

    with tempfile.TemporaryDirectory() as out_dir:
        descriptor_out = Path(out_dir) / "descriptor.pb"
        args = [
            "grpc_tools.protoc",
            f"-I{proto_path}",
            f"-I{_well_known_types_path()}",
            f"--descriptor_set_out={descriptor_out}",
            "--include_imports",
            proto_file.name,
        ]
        with _PROTOC_LOCK:
            status = protoc.main(args)
        if status != 0 or not descriptor_out.exists():
            raise InternalError(f"Failed to compile {proto_file.name} (protoc exit status {status})")
        descriptor_set = descriptor_pb2.FileDescriptorSet.FromString(descriptor_out.read_bytes())

    return descriptor_set_to_json(descriptor_set)


def _compile_to_json(proto_path: Path, service_name: str) -> bytes:
    return json.dumps(compile_proto(proto_path, service_name), separators=(",", ":")).encode("utf-8")


async def ensure_compiled(
    cache: FilesystemModelCache, metadata_hash: str, proto_path: Path, service_name: str
) -> bytes:
    json_path = cache.json_path(metadata_hash)
    if json_path.exists():
        return await asyncio.to_thread(json_path.read_bytes)

    LOGGER.info("Compiling %s%s for %s", service_name, PROTO_EXTENSION, metadata_hash)
    model_json = await asyncio.to_thread(_compile_to_json, proto_path, service_name)
    await asyncio.to_thread(cache.write_atomic, json_path, model_json)
    return model_json
