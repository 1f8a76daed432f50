"""Signature reconstruction for a single method.

Compilers lower async methods, iterators and lambdas into synthesized types
whose names mean nothing to the reader. This module undoes that where the
metadata allows it: a ``MoveNext`` of a state machine is shown as the method
that was written, with ``async``/``enumerator`` prefixes, and closures are
shown as ``anonymous int (int x) => { ... } in Outer.Method()``.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from enum import Enum

from . import tokens as sym
from .config import CleanerConfig, ColorFormat
from .descriptors import MethodRef, ParameterRef, PropertyRef, TypeKind, TypeRef
from .errors import MetadataError
from .logging import logger
from .tokens import Span, TokenRole
from .typename import bare_name, format_generic_args, format_type

MOVE_NEXT = "MoveNext"
ASYNC_STATE_MACHINE = "System.Runtime.CompilerServices.IAsyncStateMachine"
ENUMERATOR = "System.Collections.IEnumerator"
ASYNC_ENUMERATOR = "IAsyncEnumerator"
INDEXER_NAME = "Item"


class MemberKind(Enum):
    METHOD = "method"
    CONSTRUCTOR = "constructor"
    GETTER = "get"
    SETTER = "set"
    INDEX_GETTER = "index_get"
    INDEX_SETTER = "index_set"
    ADDER = "add"
    REMOVER = "remove"
    RAISER = "raise"


ACCESSOR_PREFIXES = {
    "get_": MemberKind.GETTER,
    "set_": MemberKind.SETTER,
    "add_": MemberKind.ADDER,
    "remove_": MemberKind.REMOVER,
    "raise_": MemberKind.RAISER,
}
ACCESSOR_KEYWORDS = {
    MemberKind.GETTER: sym.GETTER,
    MemberKind.INDEX_GETTER: sym.GETTER,
    MemberKind.SETTER: sym.SETTER,
    MemberKind.INDEX_SETTER: sym.SETTER,
    MemberKind.ADDER: sym.ADDER,
    MemberKind.REMOVER: sym.REMOVER,
    MemberKind.RAISER: sym.RAISER,
}
PROPERTY_KINDS = {
    MemberKind.GETTER,
    MemberKind.SETTER,
    MemberKind.INDEX_GETTER,
    MemberKind.INDEX_SETTER,
}
EVENT_KINDS = {MemberKind.ADDER, MemberKind.REMOVER, MemberKind.RAISER}


class StateMachineCache:
    """Maps synthesized state machine types to the methods they implement.

    Entries are keyed by module and type name rather than by descriptor, so
    descriptors rebuilt for every call still hit the same entry. Populating
    an entry scans every type of the state machine's module, and all
    associations found by the scan are stored at once. The lock only guards
    the dictionary; two threads may scan the same module concurrently and
    the first result stored wins.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._sources: dict[tuple[str | None, str], MethodRef | None] = {}

    @staticmethod
    def key(state_machine: TypeRef) -> tuple[str | None, str]:
        module = state_machine.module
        module_name = (module.qualified_name or module.name) if module else None
        return module_name, state_machine.full_name

    def __len__(self) -> int:
        with self._lock:
            return len(self._sources)

    def __contains__(self, state_machine: TypeRef) -> bool:
        key = self.key(state_machine)
        with self._lock:
            return key in self._sources

    def clear(self) -> None:
        with self._lock:
            self._sources.clear()

    def get_source(self, state_machine: TypeRef) -> MethodRef | None:
        key = self.key(state_machine)
        with self._lock:
            if key in self._sources:
                return self._sources[key]
        found = self._scan(state_machine)
        with self._lock:
            for machine, method in found.items():
                self._sources.setdefault(self.key(machine), method)
            # Remember misses so the module is not scanned again
            return self._sources.setdefault(key, None)

    @staticmethod
    def _scan(state_machine: TypeRef) -> dict[TypeRef, MethodRef]:
        module = state_machine.module
        if module is None:
            return {}
        try:
            types = module.get_types()
        except (MetadataError, OSError) as e:
            logger.debug("Cannot scan module %s for state machines: %s", module.name, e)
            return {}
        found = {}
        for type_ref in types:
            for method in type_ref.methods:
                if method.state_machine is not None:
                    found.setdefault(method.state_machine, method)
        return found


def state_machine_kind(method: MethodRef) -> tuple[bool, bool] | None:
    """(is_async, is_enumerator) if method is a synthesized MoveNext."""
    declaring = method.declaring_type
    if (
        declaring is None
        or method.name != MOVE_NEXT
        or not method.is_private
        or not declaring.compiler_generated
    ):
        return None
    if any(bare_name(i.name) == ASYNC_ENUMERATOR for i in declaring.interfaces):
        return True, True
    if declaring.implements(ASYNC_STATE_MACHINE):
        return True, False
    if declaring.implements(ENUMERATOR):
        return False, True
    return None


def name_fragment(name: str) -> str | None:
    """The original method name embedded in a synthesized name like ``<Run>d__4``."""
    start = name.find("<") + 1
    end = name.find(">")
    if start > 0 and end > start:
        return name[start:end]
    return None


def _same_type(a: TypeRef | None, b: TypeRef | None) -> bool:
    """Structural match: shape, name, element and generic arguments."""
    if a is b:
        return True
    if a is None or b is None or a.kind is not b.kind:
        return False
    if a.element is not None or b.element is not None:
        return _same_type(a.element, b.element)
    return (
        a.full_name == b.full_name
        and len(a.generic_args) == len(b.generic_args)
        and all(_same_type(x, y) for x, y in zip(a.generic_args, b.generic_args))
    )


def recover_by_name(state_machine: TypeRef) -> MethodRef | None:
    """Find the user method of a state machine from its decorated name.

    Overloads are told apart by the captured fields of the state machine:
    fields with plain names are the method's parameters, and a field whose
    synthesized name ends in ``this`` means an instance method.
    """
    outer = state_machine.declaring_type
    fragment = name_fragment(state_machine.name)
    if outer is None or not fragment:
        return None
    try:
        return outer.find_method(fragment)
    except MetadataError:
        pass
    captured = [f for f in state_machine.fields if f.is_public and not f.is_static]
    parameters = [f.type for f in captured if f.name and not f.name.startswith("<")]
    instance = any(f.name.startswith("<") and f.name.endswith("this") for f in captured)
    candidates = [
        m
        for m in outer.find_methods(fragment)
        if not (instance and m.is_static)
        and len(m.parameters) == len(parameters)
        and all(_same_type(p.type, t) for p, t in zip(m.parameters, parameters))
    ]
    if len(candidates) == 1:
        return candidates[0]
    logger.debug(
        "No unique match for %s in %s (%d candidates)",
        fragment,
        outer.full_name,
        len(candidates),
    )
    return None


def resolve_state_machine(
    method: MethodRef, cache: StateMachineCache
) -> tuple[MethodRef, bool, bool, bool]:
    """Follow a synthesized MoveNext back to the user method.

    Returns the method to show, its async and enumerator flags, and whether
    the input was a state machine at all.
    """
    is_async, is_enumerator = method.is_async, method.is_iterator
    synthesized = False
    # An async iterator may be synthesized one more layer deep
    for _ in range(2):
        kind = state_machine_kind(method)
        if kind is None:
            break
        synthesized = True
        is_async |= kind[0]
        is_enumerator |= kind[1]
        state_machine = method.declaring_type
        original = cache.get_source(state_machine) or recover_by_name(state_machine)
        if original is None:
            break
        method = original
        is_async |= method.is_async
        is_enumerator |= method.is_iterator
    return method, is_async, is_enumerator, synthesized


def find_container(method: MethodRef) -> MethodRef | None:
    """The method a lambda was written in, from its synthesized name."""
    if method.container is not None:
        return method.container
    fragment = name_fragment(method.name)
    declaring = method.declaring_type
    if not fragment:
        return None
    # Closure classes are nested in the type that declares the container
    while declaring is not None:
        found = next((m for m in declaring.methods if m.name == fragment), None)
        if found is not None:
            return found
        declaring = declaring.declaring_type if declaring.compiler_generated else None
    return None


def classify(method: MethodRef, name: str) -> MemberKind:
    if method.is_constructor:
        return MemberKind.CONSTRUCTOR
    if not method.is_special_name:
        return MemberKind.METHOD
    if name == "get_Item":
        return MemberKind.INDEX_GETTER
    if name == "set_Item":
        return MemberKind.INDEX_SETTER
    for prefix, kind in ACCESSOR_PREFIXES.items():
        if name.startswith(prefix):
            return kind
    return MemberKind.METHOD


def strip_accessor(name: str, kind: MemberKind) -> str:
    for prefix, prefix_kind in ACCESSOR_PREFIXES.items():
        if kind is prefix_kind and name.startswith(prefix) and len(name) > len(prefix):
            return name[len(prefix) :]
    return name


def explicit_interface_method(method: MethodRef) -> MethodRef | None:
    """Interface method that ``method`` implements under a qualified name."""
    declaring = method.declaring_type
    if declaring is None or method.is_static or "." not in method.name:
        return None
    # Interfaces whose name appears in the method name are the likely match
    interfaces = sorted(
        declaring.interfaces, key=lambda i: bare_name(i.name) not in method.name
    )
    try:
        for interface in interfaces:
            for interface_method, target in declaring.get_interface_map(interface):
                if target is method:
                    if interface_method.name != method.name:
                        return interface_method
                    return None
    except MetadataError as e:
        logger.debug("Interface map lookup failed for %r: %s", method, e)
    return None


def find_indexer(
    method: MethodRef, kind: MemberKind, explicit: MethodRef | None
) -> PropertyRef | None:
    declaring = method.declaring_type
    if declaring is None:
        return None
    try:
        indexer = declaring.find_property(INDEXER_NAME)
        if indexer is None and explicit is not None:
            getter = kind is MemberKind.INDEX_GETTER
            indexer = next(
                (
                    p
                    for p in declaring.properties
                    if (p.getter if getter else p.setter) is method
                ),
                None,
            )
    except MetadataError as e:
        logger.debug("Indexer lookup failed for %r: %s", method, e)
        return None
    if indexer is None or not indexer.index_parameters:
        return None
    return indexer


def value_type(
    method: MethodRef,
    kind: MemberKind,
    name: str,
    indexer: PropertyRef | None,
) -> tuple[bool, TypeRef | None]:
    """(has value type, value type) shown before the accessor keyword."""
    if kind is MemberKind.CONSTRUCTOR:
        return False, None
    if indexer is not None and indexer.type is not None:
        return True, indexer.type
    if kind in (MemberKind.METHOD, MemberKind.GETTER, MemberKind.INDEX_GETTER):
        return method.return_type is not None, method.return_type
    if kind in (MemberKind.SETTER, MemberKind.ADDER, MemberKind.REMOVER):
        params = method.parameters
        if len(params) == 1 and params[0].type is not None:
            return True, params[0].type
        return False, None
    if kind is MemberKind.RAISER and method.declaring_type is not None:
        try:
            event = method.declaring_type.find_event(strip_accessor(name, kind))
        except MetadataError:
            event = None
        if event is not None and event.handler_type is not None:
            return True, event.handler_type
    return False, None


def namespace_of(method: MethodRef) -> str | None:
    declaring = method.declaring_type
    if declaring is None:
        return method.namespace
    while declaring.declaring_type is not None and not declaring.namespace:
        declaring = declaring.declaring_type
    return declaring.namespace


def format_namespace(namespace: str, config: CleanerConfig) -> Iterator[Span]:
    if config.color_format is ColorFormat.NONE:
        yield Span(namespace, TokenRole.NAMESPACE)
        return
    for i, segment in enumerate(s for s in namespace.split(".") if s):
        if i:
            yield Span(sym.MEMBER_SEPARATOR, TokenRole.PUNCTUATION)
        yield Span(segment, TokenRole.NAMESPACE)


def format_parameters(
    parameters: list[ParameterRef],
    config: CleanerConfig,
    brackets: tuple[str, str] = (sym.PARAMETERS_OPEN, sym.PARAMETERS_CLOSE),
) -> Iterator[Span]:
    if not parameters:
        # One span, not two adjacent single characters
        yield Span(brackets[0] + brackets[1], TokenRole.PUNCTUATION)
        return
    yield Span(brackets[0], TokenRole.PUNCTUATION)
    last = len(parameters) - 1
    for i, param in enumerate(parameters):
        if i:
            yield Span(sym.LIST_SEPARATOR, TokenRole.PUNCTUATION)
        ptype = param.type
        if i == last and param.is_params and ptype is not None and ptype.kind is TypeKind.ARRAY:
            yield Span(sym.PARAMS + sym.SPACE, TokenRole.KEYWORD)
        if ptype is not None:
            yield from format_type(ptype, config, is_out=param.is_out)
            if param.name:
                yield Span(sym.SPACE + param.name, TokenRole.PARAMETER)
        elif param.name:
            yield Span(param.name, TokenRole.PARAMETER)
    yield Span(brackets[1], TokenRole.PUNCTUATION)


def format_member(
    method: MethodRef,
    config: CleanerConfig,
    cache: StateMachineCache | None = None,
) -> Iterator[Span]:
    """Spans of a method signature as the user wrote it."""
    if cache is None:
        cache = StateMachineCache()
    container = yield from _format_signature(method, config, cache)
    if container is not None:
        yield Span(sym.SPACE + sym.IN + sym.SPACE, TokenRole.FLOW_KEYWORD)
        # Containers of containers are not followed
        yield from _format_signature(container, config, cache)


def _format_signature(method: MethodRef, config: CleanerConfig, cache: StateMachineCache):
    method, is_async, is_enumerator, synthesized = resolve_state_machine(method, cache)
    declaring = method.declaring_type

    container = None
    anonymous = False
    if method.compiler_generated:
        anonymous = True
        container = find_container(method)
    elif (
        not synthesized
        and declaring is not None
        and declaring.is_sealed
        and declaring.compiler_generated
    ):
        anonymous = True

    if anonymous:
        yield from _format_anonymous(method, config, is_async)
        return container

    if method.is_static:
        yield Span(sym.STATIC + sym.SPACE, TokenRole.KEYWORD)
    if is_async:
        yield Span(sym.ASYNC + sym.SPACE, TokenRole.KEYWORD)
    if is_enumerator:
        yield Span(sym.ENUMERATOR + sym.SPACE, TokenRole.KEYWORD)

    explicit = explicit_interface_method(method)
    name = explicit.name if explicit is not None else method.name
    kind = classify(method, name)
    indexer = None
    if kind in (MemberKind.INDEX_GETTER, MemberKind.INDEX_SETTER):
        indexer = find_indexer(method, kind, explicit)
        if indexer is None:
            kind = MemberKind.GETTER if kind is MemberKind.INDEX_GETTER else MemberKind.SETTER

    has_value, value = value_type(method, kind, name, indexer)
    if has_value:
        yield from format_type(value, config)
        yield Span(sym.SPACE, TokenRole.SPACE)

    keyword = ACCESSOR_KEYWORDS.get(kind)
    if keyword:
        yield Span(keyword + sym.SPACE, TokenRole.KEYWORD)

    separate = False
    if config.include_namespaces:
        namespace = namespace_of(method)
        if namespace:
            yield from format_namespace(namespace, config)
            separate = True
        else:
            yield Span(sym.GLOBAL, TokenRole.KEYWORD)
            yield Span(sym.GLOBAL_SEPARATOR, TokenRole.PUNCTUATION)
    if declaring is not None:
        if separate:
            yield Span(sym.MEMBER_SEPARATOR, TokenRole.PUNCTUATION)
        yield from format_type(declaring, config)
        separate = True

    if kind is not MemberKind.CONSTRUCTOR:
        if explicit is not None and explicit.declaring_type is not None:
            if separate:
                yield Span(sym.MEMBER_SEPARATOR, TokenRole.PUNCTUATION)
            yield from format_type(explicit.declaring_type, config)
            separate = True
        if indexer is not None:
            yield from format_parameters(
                indexer.index_parameters, config, (sym.INDEXER_OPEN, sym.INDEXER_CLOSE)
            )
        elif name:
            if separate:
                yield Span(sym.MEMBER_SEPARATOR, TokenRole.PUNCTUATION)
            if kind in PROPERTY_KINDS:
                role = TokenRole.PROPERTY
            elif kind in EVENT_KINDS:
                role = TokenRole.EVENT
            else:
                role = TokenRole.METHOD
            yield Span(strip_accessor(name, kind), role)
            yield from format_generic_args(method.generic_args, config)

    # Accessors have fixed signatures
    if kind in (MemberKind.METHOD, MemberKind.CONSTRUCTOR):
        yield from format_parameters(method.parameters, config)
    return None


def _format_anonymous(method: MethodRef, config: CleanerConfig, is_async: bool):
    yield Span(sym.ANONYMOUS + sym.SPACE, TokenRole.KEYWORD)
    if method.return_type is not None:
        yield from format_type(method.return_type, config)
        yield Span(sym.SPACE, TokenRole.SPACE)
    if is_async:
        yield Span(sym.ASYNC, TokenRole.KEYWORD)
        yield Span(sym.SPACE, TokenRole.SPACE)
    yield from format_parameters(method.parameters, config)
    yield Span(sym.SPACE + sym.LAMBDA + sym.SPACE, TokenRole.METHOD)
    yield Span(sym.BODY_OPEN, TokenRole.PUNCTUATION)
    yield Span(sym.SPACE + sym.HIDDEN_BODY + sym.SPACE, TokenRole.EXTRA_DATA)
    yield Span(sym.BODY_CLOSE, TokenRole.PUNCTUATION)
