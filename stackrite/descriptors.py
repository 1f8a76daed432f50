"""Read-only descriptors of types, methods and stack frames.

The formatters never touch a live runtime. Everything they need comes from
these records, which a host fills in from its own introspection (see
``stackrite.trace`` for Python) or from pre-extracted metadata (a .NET or
Unity stack dumped to JSON, a test fixture).

The records are plain dataclasses compared by identity, so descriptors may
point at each other in cycles (a method's declaring type lists the method).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import MetadataError

OFFSET_UNAVAILABLE = -1


class TypeKind(Enum):
    """Shape of a type. Wrapper shapes carry their target in ``element``."""

    CLASS = "class"
    STRUCT = "struct"
    ENUM = "enum"
    INTERFACE = "interface"
    GENERIC_PARAMETER = "generic_parameter"
    POINTER = "pointer"
    ARRAY = "array"
    BYREF = "byref"
    NULLABLE = "nullable"


WRAPPER_KINDS = frozenset(
    {TypeKind.POINTER, TypeKind.ARRAY, TypeKind.BYREF, TypeKind.NULLABLE}
)


@dataclass(eq=False)
class ModuleRef:
    """The unit of code a type was loaded from (assembly, Python module)."""

    name: str
    qualified_name: str | None = None
    location: str | None = None
    types: list[TypeRef] = field(default_factory=list)

    def get_types(self) -> list[TypeRef]:
        return list(self.types)

    def get_location(self) -> str | None:
        return self.location


@dataclass(eq=False)
class TypeRef:
    name: str
    namespace: str | None = None
    kind: TypeKind = TypeKind.CLASS
    element: TypeRef | None = None
    generic_args: list[TypeRef] = field(default_factory=list)
    declaring_type: TypeRef | None = None
    generic_definition: TypeRef | None = None
    alias: str | None = None
    is_sealed: bool = False
    compiler_generated: bool = False
    interfaces: list[TypeRef] = field(default_factory=list)
    methods: list[MethodRef] = field(default_factory=list)
    properties: list[PropertyRef] = field(default_factory=list)
    events: list[EventRef] = field(default_factory=list)
    fields: list[FieldRef] = field(default_factory=list)
    interface_maps: dict[TypeRef, list[tuple[MethodRef, MethodRef]]] = field(
        default_factory=dict
    )
    module: ModuleRef | None = None

    def __repr__(self) -> str:
        return f"<TypeRef {self.full_name}>"

    @property
    def full_name(self) -> str:
        """Dotted identity used for hidden-type matching."""
        if self.kind in WRAPPER_KINDS and self.element is not None:
            return self.element.full_name
        if self.declaring_type is not None:
            return f"{self.declaring_type.full_name}.{self.name}"
        if self.namespace:
            return f"{self.namespace}.{self.name}"
        return self.name

    def implements(self, full_name: str) -> bool:
        return any(i.full_name == full_name for i in self.interfaces)

    def find_methods(self, name: str) -> list[MethodRef]:
        return [m for m in self.methods if m.name == name]

    def find_method(self, name: str) -> MethodRef | None:
        """Single method by name; MetadataError if the name is overloaded."""
        found = self.find_methods(name)
        if len(found) > 1:
            raise MetadataError(f"Ambiguous match for {self.full_name}.{name}")
        return found[0] if found else None

    def find_property(self, name: str) -> PropertyRef | None:
        found = [p for p in self.properties if p.name == name]
        if len(found) > 1:
            raise MetadataError(f"Ambiguous match for {self.full_name}.{name}")
        return found[0] if found else None

    def find_event(self, name: str) -> EventRef | None:
        return next((e for e in self.events if e.name == name), None)

    def get_interface_map(self, interface: TypeRef) -> list[tuple[MethodRef, MethodRef]]:
        """Pairs of (interface method, implementing method) for an interface."""
        return list(self.interface_maps.get(interface, ()))


@dataclass(eq=False)
class ParameterRef:
    name: str | None
    type: TypeRef | None = None
    is_out: bool = False
    is_params: bool = False


@dataclass(eq=False)
class FieldRef:
    name: str
    type: TypeRef | None = None
    is_public: bool = True
    is_static: bool = False


@dataclass(eq=False)
class MethodRef:
    name: str
    declaring_type: TypeRef | None = None
    # Used when there is no declaring type (module-level functions)
    namespace: str | None = None
    parameters: list[ParameterRef] = field(default_factory=list)
    # None when unknown; constructors have none either
    return_type: TypeRef | None = None
    generic_args: list[TypeRef] = field(default_factory=list)
    is_static: bool = False
    is_private: bool = False
    is_special_name: bool = False
    is_constructor: bool = False
    compiler_generated: bool = False
    is_async: bool = False
    is_iterator: bool = False
    # Synthesized state machine type that carries this method's body
    state_machine: TypeRef | None = None
    # Enclosing method of a lambda, when the host knows it directly
    container: MethodRef | None = None
    module: ModuleRef | None = None

    def __repr__(self) -> str:
        owner = self.declaring_type.full_name if self.declaring_type else self.namespace
        return f"<MethodRef {owner}.{self.name}>" if owner else f"<MethodRef {self.name}>"

    def get_module(self) -> ModuleRef | None:
        if self.module is not None:
            return self.module
        return self.declaring_type.module if self.declaring_type else None


@dataclass(eq=False)
class PropertyRef:
    name: str
    type: TypeRef | None = None
    getter: MethodRef | None = None
    setter: MethodRef | None = None
    index_parameters: list[ParameterRef] = field(default_factory=list)


@dataclass(eq=False)
class EventRef:
    name: str
    handler_type: TypeRef | None = None
    adder: MethodRef | None = None
    remover: MethodRef | None = None
    raiser: MethodRef | None = None


@dataclass(eq=False)
class FrameRef:
    """One call-stack entry. Line and column 0 mean unavailable."""

    method: MethodRef | None
    file_name: str | None = None
    line: int = 0
    column: int = 0
    offset: int = OFFSET_UNAVAILABLE
    hidden: bool = False

    def get_file_name(self) -> str | None:
        return self.file_name


@dataclass(eq=False)
class StackTrace:
    frames: list[FrameRef] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.frames)

    def __iter__(self):
        return iter(self.frames)

    @classmethod
    def from_exception(cls, exc: BaseException, fetch_source_info: bool = True):
        """Capture the frames of a raised exception's traceback."""
        from .trace import extract_trace

        return extract_trace(exc.__traceback__, fetch_source_info=fetch_source_info)

    @classmethod
    def current(cls, skip: int = 0, fetch_source_info: bool = True):
        """Capture the calling thread's live stack."""
        from .trace import extract_stack

        return extract_stack(skip=skip + 1, fetch_source_info=fetch_source_info)


def array_of(element: TypeRef) -> TypeRef:
    return TypeRef(element.name, kind=TypeKind.ARRAY, element=element)


def pointer_to(element: TypeRef) -> TypeRef:
    return TypeRef(element.name, kind=TypeKind.POINTER, element=element)


def by_ref(element: TypeRef) -> TypeRef:
    return TypeRef(element.name, kind=TypeKind.BYREF, element=element)


def nullable_of(element: TypeRef) -> TypeRef:
    return TypeRef(element.name, kind=TypeKind.NULLABLE, element=element)


def generic_parameter(name: str) -> TypeRef:
    return TypeRef(name, kind=TypeKind.GENERIC_PARAMETER)


def make_generic(definition: TypeRef, *args: TypeRef, **overrides: Any) -> TypeRef:
    """Constructed generic type, e.g. ``make_generic(LIST, BUILTINS["Int32"])``."""
    attrs = dict(
        namespace=definition.namespace,
        kind=definition.kind,
        declaring_type=definition.declaring_type,
        is_sealed=definition.is_sealed,
        compiler_generated=definition.compiler_generated,
        interfaces=definition.interfaces,
        module=definition.module,
    )
    attrs.update(overrides)
    return TypeRef(
        definition.name,
        generic_args=list(args),
        generic_definition=definition,
        **attrs,
    )


def _builtin(name: str, alias: str, kind: TypeKind = TypeKind.STRUCT) -> TypeRef:
    return TypeRef(name, namespace="System", kind=kind, alias=alias, is_sealed=True)


# .NET primitives with their keyword spellings
BUILTINS: dict[str, TypeRef] = {
    t.name: t
    for t in (
        _builtin("Boolean", "bool"),
        _builtin("Byte", "byte"),
        _builtin("SByte", "sbyte"),
        _builtin("Int16", "short"),
        _builtin("UInt16", "ushort"),
        _builtin("Int32", "int"),
        _builtin("UInt32", "uint"),
        _builtin("Int64", "long"),
        _builtin("UInt64", "ulong"),
        _builtin("Char", "char"),
        _builtin("Single", "float"),
        _builtin("Double", "double"),
        _builtin("Decimal", "decimal"),
        _builtin("Object", "object", TypeKind.CLASS),
        _builtin("String", "string", TypeKind.CLASS),
        _builtin("Void", "void"),
    )
}
