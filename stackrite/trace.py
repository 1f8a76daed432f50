"""Descriptors for live Python objects.

Builds TypeRef/MethodRef/FrameRef records from tracebacks, frames, functions
and classes so that Python stacks render like any other. Python has no
separate state machine types: coroutines and generators are described with
the ``is_async``/``is_iterator`` flags of their own code objects, and
lambdas and generator expressions are described as compiler-generated
methods pointing at the function they were written in.
"""

from __future__ import annotations

import enum
import inspect
import sys
import types
import typing
from typing import Any

from .descriptors import (
    FrameRef,
    MethodRef,
    ModuleRef,
    ParameterRef,
    PropertyRef,
    StackTrace,
    TypeKind,
    TypeRef,
    generic_parameter,
    make_generic,
    nullable_of,
)
from .logging import logger

CO_VARARGS = inspect.CO_VARARGS
CO_VARKEYWORDS = inspect.CO_VARKEYWORDS
ASYNC_FLAGS = inspect.CO_COROUTINE | inspect.CO_ASYNC_GENERATOR
ITERATOR_FLAGS = inspect.CO_GENERATOR | inspect.CO_ASYNC_GENERATOR

# Code objects the compiler creates for expressions
SYNTHESIZED = {"<lambda>", "<genexpr>", "<listcomp>", "<setcomp>", "<dictcomp>"}

ALIASES = {
    int: "int",
    float: "float",
    complex: "complex",
    bool: "bool",
    str: "str",
    bytes: "bytes",
    object: "object",
    type(None): "None",
}
UnionType = getattr(types, "UnionType", None)


def resolve_qualname(namespace: Any, parts: list[str]) -> Any:
    """Follow a dotted qualname from a module or globals dict; None if lost."""
    obj = namespace
    for part in parts:
        if part == "<locals>" or obj is None:
            return None
        if isinstance(obj, dict):
            obj = obj.get(part)
        else:
            obj = inspect.getattr_static(obj, part, None)
    return obj


def _code_of(obj: Any) -> Any:
    obj = getattr(obj, "__func__", obj)
    return getattr(obj, "__code__", None)


def _is_protocol(cls: type) -> bool:
    return bool(getattr(cls, "_is_protocol", False)) and cls not in (
        typing.Protocol,
        typing.Generic,
    )


def class_kind(cls: type) -> TypeKind:
    try:
        if issubclass(cls, enum.Enum):
            return TypeKind.ENUM
        if _is_protocol(cls):
            return TypeKind.INTERFACE
        if issubclass(cls, (int, float, complex)):
            return TypeKind.STRUCT
    except TypeError:
        pass
    return TypeKind.CLASS


def type_hints(func: Any) -> dict[str, Any]:
    try:
        return typing.get_type_hints(func)
    except Exception:
        # Unresolvable forward references keep their source text
        return dict(getattr(func, "__annotations__", None) or {})


def own_member(klass: type, code: types.CodeType) -> tuple[str, Any, str] | None:
    """(attribute name, raw attribute, role) if ``klass`` itself defines ``code``."""
    for attr_name, raw in vars(klass).items():
        if isinstance(raw, property):
            if raw.fget is not None and _code_of(raw.fget) is code:
                return attr_name, raw, "get"
            if raw.fset is not None and _code_of(raw.fset) is code:
                return attr_name, raw, "set"
        elif _code_of(raw) is code:
            if isinstance(raw, staticmethod):
                return attr_name, raw, "static"
            if isinstance(raw, classmethod):
                return attr_name, raw, "class"
            return attr_name, raw, "method"
    return None


def member_of(owner: type, code: types.CodeType) -> tuple[str, Any, str] | None:
    for klass in getattr(owner, "__mro__", ()):
        found = own_member(klass, code)
        if found is not None:
            return found
    return None


def defining_class(cls: type, code: types.CodeType) -> type | None:
    """The class in the MRO of ``cls`` whose body defines ``code``."""
    return next(
        (k for k in getattr(cls, "__mro__", ()) if own_member(k, code) is not None), None
    )


class Describer:
    """Builds descriptors, reusing one record per Python object."""

    def __init__(self):
        self._types: dict[int, tuple[Any, TypeRef]] = {}
        self._methods: dict[int, tuple[Any, MethodRef]] = {}
        self._modules: dict[str, ModuleRef] = {}

    def describe_module(self, name: str | None) -> ModuleRef | None:
        if not name:
            return None
        if name not in self._modules:
            module = sys.modules.get(name)
            self._modules[name] = ModuleRef(
                name, qualified_name=name, location=getattr(module, "__file__", None)
            )
        return self._modules[name]

    def describe_type(self, tp: Any) -> TypeRef | None:
        if tp is None:
            return self.describe_class(type(None))
        if isinstance(tp, str):
            return TypeRef(tp)
        if isinstance(tp, typing.TypeVar):
            return generic_parameter(tp.__name__)
        if tp is Ellipsis:
            return TypeRef("...", alias="...")
        if tp is typing.Any:
            return TypeRef("Any", namespace="typing")
        origin = typing.get_origin(tp)
        if origin is not None:
            return self._describe_alias(tp, origin)
        if isinstance(tp, type):
            return self.describe_class(tp)
        return TypeRef(getattr(tp, "__name__", None) or repr(tp))

    def _describe_alias(self, tp: Any, origin: Any) -> TypeRef:
        args = [
            a
            for arg in typing.get_args(tp)
            for a in (arg if isinstance(arg, (list, tuple)) else [arg])
        ]
        if origin is typing.Annotated:
            return self.describe_type(args[0])
        if origin is typing.Literal:
            base = TypeRef("Literal", namespace="typing")
            return make_generic(base, *[TypeRef(repr(a)) for a in args])
        if origin is typing.Union or (UnionType is not None and origin is UnionType):
            rest = [a for a in args if a is not type(None)]
            if len(rest) == 1 and len(args) == 2:
                return nullable_of(self.describe_type(rest[0]))
            base = TypeRef("Union", namespace="typing")
        elif isinstance(origin, type):
            base = self.describe_class(origin)
        else:
            base = TypeRef(getattr(origin, "_name", None) or repr(origin))
        return make_generic(base, *[self.describe_type(a) for a in args])

    def describe_class(self, cls: type) -> TypeRef:
        key = id(cls)
        if key in self._types:
            return self._types[key][1]
        module_name = getattr(cls, "__module__", None)
        qualname = getattr(cls, "__qualname__", cls.__name__)
        ref = TypeRef(
            cls.__name__,
            namespace=None if module_name == "builtins" else module_name,
            kind=class_kind(cls),
            alias=ALIASES.get(cls),
            is_sealed=bool(getattr(cls, "__final__", False)),
        )
        # Registered before recursing so that cycles end here
        self._types[key] = cls, ref
        outer = resolve_qualname(sys.modules.get(module_name), qualname.split(".")[:-1])
        if isinstance(outer, type):
            ref.declaring_type = self.describe_class(outer)
        params = getattr(cls, "__parameters__", ())
        if isinstance(params, tuple):
            ref.generic_args = [self.describe_type(p) for p in params]
        ref.interfaces = [self.describe_class(b) for b in cls.__mro__[1:] if _is_protocol(b)]
        ref.module = self.describe_module(module_name)
        indexer = self._indexer(cls)
        if indexer is not None:
            ref.properties.append(indexer)
        return ref

    def _indexer(self, cls: type) -> PropertyRef | None:
        getitem = inspect.getattr_static(cls, "__getitem__", None)
        if not isinstance(getitem, types.FunctionType):
            return None
        hints = type_hints(getitem)
        params = self._parameters(getitem, getitem.__code__, hints, skip_first=True)
        value = self.describe_type(hints["return"]) if "return" in hints else None
        return PropertyRef("Item", type=value, index_parameters=params)

    def _parameters(self, func, code, hints, skip_first) -> list[ParameterRef]:
        params = []
        signature = None
        if func is not None:
            try:
                signature = inspect.signature(func)
            except (TypeError, ValueError):
                signature = None
        if signature is not None:
            for p in signature.parameters.values():
                name = p.name
                if p.kind is p.VAR_POSITIONAL:
                    name = f"*{name}"
                elif p.kind is p.VAR_KEYWORD:
                    name = f"**{name}"
                ptype = self.describe_type(hints[p.name]) if p.name in hints else None
                params.append(ParameterRef(name, ptype))
        else:
            count = code.co_argcount + code.co_kwonlyargcount
            names = list(code.co_varnames[:count])
            if code.co_flags & CO_VARARGS:
                names.append(f"*{code.co_varnames[count]}")
                count += 1
            if code.co_flags & CO_VARKEYWORDS:
                names.append(f"**{code.co_varnames[count]}")
            params = [ParameterRef(n) for n in names if not n.startswith(".")]
        if skip_first and params:
            params = params[1:]
        return params

    def describe_function(self, func: Any, owner: type | None = None) -> MethodRef:
        """MethodRef of a function, method, staticmethod or classmethod."""
        func = getattr(func, "__func__", func)
        key = id(func)
        if key in self._methods:
            return self._methods[key][1]
        code = func.__code__
        if owner is None:
            parts = func.__qualname__.split(".")[:-1]
            candidate = resolve_qualname(func.__globals__, parts)
            owner = candidate if isinstance(candidate, type) else None
        method = self._describe_code(code, func, owner, func.__globals__)
        self._methods[key] = func, method
        return method

    def describe_frame_code(self, frame: types.FrameType) -> MethodRef:
        code = frame.f_code
        owner = self._frame_owner(frame, code)
        func = None
        if owner is not None:
            found = member_of(owner, code)
            if found is not None:
                raw = found[1]
                func = raw.fget if found[2] == "get" else raw.fset if found[2] == "set" else raw
                func = getattr(func, "__func__", func)
        if func is None and code.co_name not in SYNTHESIZED:
            candidate = frame.f_globals.get(code.co_name)
            if _code_of(candidate) is code:
                func = getattr(candidate, "__func__", candidate)
        if func is not None:
            if id(func) not in self._methods:
                self._methods[id(func)] = func, self._describe_code(
                    code, func, owner, frame.f_globals
                )
            return self._methods[id(func)][1]
        return self._describe_code(code, None, owner, frame.f_globals)

    @staticmethod
    def _frame_owner(frame: types.FrameType, code: types.CodeType) -> type | None:
        qualname = getattr(code, "co_qualname", None)
        if qualname:
            parts = qualname.split(".")[:-1]
            candidate = resolve_qualname(frame.f_globals, parts)
            if isinstance(candidate, type):
                return candidate
            if parts and "<locals>" not in parts:
                return None
        # Same fallback as for tracebacks without qualified code names
        for n, v in frame.f_locals.items():
            if n in ("self", "cls") and v is not None:
                cls = v.__class__ if n == "self" else v
                if isinstance(cls, type):
                    return defining_class(cls, code)
        return None

    def _describe_code(self, code, func, owner, f_globals) -> MethodRef:
        flags = code.co_flags
        namespace = f_globals.get("__name__")
        method = MethodRef(
            code.co_name,
            declaring_type=self.describe_class(owner) if owner is not None else None,
            namespace=namespace,
            is_async=bool(flags & ASYNC_FLAGS),
            is_iterator=bool(flags & ITERATOR_FLAGS),
            module=self.describe_module(namespace),
        )
        if code.co_name in SYNTHESIZED:
            self._describe_synthesized(method, code, f_globals)
            return method

        hints = type_hints(func) if func is not None else {}
        found = member_of(owner, code) if owner is not None else None
        role = found[2] if found else "method"
        if role == "get":
            method.name = f"get_{found[0]}"
            method.is_special_name = True
        elif role == "set":
            method.name = f"set_{found[0]}"
            method.is_special_name = True
        elif role in ("static", "class"):
            method.is_static = True
        elif owner is not None and code.co_name == "__init__":
            method.is_constructor = True
        elif owner is not None and code.co_name == "__getitem__":
            method.name = "get_Item"
            method.is_special_name = True
        elif owner is not None and code.co_name == "__setitem__":
            method.name = "set_Item"
            method.is_special_name = True
        method.is_private = code.co_name.startswith("_") and not code.co_name.endswith("__")
        method.parameters = self._parameters(
            func, code, hints, skip_first=owner is not None and role != "static"
        )
        if "return" in hints and not method.is_constructor:
            method.return_type = self.describe_type(hints["return"])
        return method

    def _describe_synthesized(self, method: MethodRef, code, f_globals) -> None:
        method.compiler_generated = True
        method.parameters = self._parameters(None, code, {}, skip_first=False)
        qualname = getattr(code, "co_qualname", None)
        if not qualname or ".<locals>." not in qualname:
            return
        container_name = qualname.rsplit(".<locals>.", 1)[0]
        method.name = f"<{container_name.rsplit('.', 1)[-1]}>{code.co_name[1:-1]}"
        parts = container_name.split(".")
        container = resolve_qualname(f_globals, parts)
        if _code_of(container) is None:
            return
        owner = resolve_qualname(f_globals, parts[:-1]) if len(parts) > 1 else None
        method.container = self.describe_function(
            container, owner if isinstance(owner, type) else None
        )

    def describe_frame(
        self,
        frame: types.FrameType,
        lineno: int | None,
        lasti: int,
        fetch_source_info: bool = True,
        hidden: bool = False,
    ) -> FrameRef:
        method = self.describe_frame_code(frame)
        ref = FrameRef(method, offset=lasti if lasti >= 0 else -1, hidden=hidden)
        if fetch_source_info:
            ref.file_name = frame.f_code.co_filename
            ref.line = lineno or 0
            ref.column = column_of(frame.f_code, lasti)
        return ref


def column_of(code: types.CodeType, lasti: int) -> int:
    """1-based column of the instruction at ``lasti``; 0 if unknown."""
    if lasti < 0 or not hasattr(code, "co_positions"):
        return 0
    try:
        positions = list(code.co_positions())
        col = positions[lasti // 2][2]
    except (IndexError, ValueError):
        return 0
    return col + 1 if col is not None else 0


def _hide_flag(frame: types.FrameType) -> Any:
    return frame.f_globals.get("__tracebackhide__") or frame.f_locals.get(
        "__tracebackhide__"
    )


def extract_trace(tb: types.TracebackType | None, fetch_source_info: bool = True) -> StackTrace:
    """StackTrace of a traceback, outermost call first."""
    describer = Describer()
    frames = []
    while tb is not None:
        frame = tb.tb_frame
        hide = _hide_flag(frame)
        if hide == "until":
            # Hide this frame and all previous frames
            frames = []
        else:
            frames.append(
                describer.describe_frame(
                    frame, tb.tb_lineno, tb.tb_lasti, fetch_source_info, bool(hide)
                )
            )
        tb = tb.tb_next
    logger.debug("Extracted %d frames", len(frames))
    return StackTrace(frames)


def extract_stack(skip: int = 0, fetch_source_info: bool = True) -> StackTrace:
    """StackTrace of the calling thread, outermost call first."""
    describer = Describer()
    frame = sys._getframe(skip + 1)
    frames = []
    while frame is not None:
        hide = _hide_flag(frame)
        if hide == "until":
            break
        frames.append(
            describer.describe_frame(
                frame, frame.f_lineno, frame.f_lasti, fetch_source_info, bool(hide)
            )
        )
        frame = frame.f_back
    frames.reverse()
    return StackTrace(frames)


def describe_type(tp: Any) -> TypeRef | None:
    return Describer().describe_type(tp)


def describe_function(func: Any) -> MethodRef:
    return Describer().describe_function(func)
