from __future__ import annotations

from collections.abc import Iterator

from . import tokens as sym
from .config import CleanerConfig
from .descriptors import TypeKind, TypeRef
from .tokens import Span, TokenRole

GENERIC_ARITY_SEPARATOR = "`"

KIND_ROLES = {
    TypeKind.GENERIC_PARAMETER: TokenRole.GENERIC_PARAMETER,
    TypeKind.INTERFACE: TokenRole.INTERFACE,
    TypeKind.ENUM: TokenRole.ENUM,
    TypeKind.STRUCT: TokenRole.STRUCT,
    TypeKind.CLASS: TokenRole.CLASS,
}


def type_role(type_ref: TypeRef) -> TokenRole:
    return KIND_ROLES.get(type_ref.kind, TokenRole.CLASS)


def bare_name(name: str) -> str:
    """Strip the generic arity suffix: ``List`1`` becomes ``List``."""
    index = name.rfind(GENERIC_ARITY_SEPARATOR)
    return name[:index] if index > 0 else name


def format_type(
    type_ref: TypeRef | None, config: CleanerConfig, is_out: bool = False
) -> Iterator[Span]:
    """Spans spelling out a type the way it would be declared in code."""
    if type_ref is None:
        yield Span(sym.NULL, TokenRole.KEYWORD)
        return
    if config.use_type_aliases and type_ref.alias:
        yield Span(type_ref.alias, TokenRole.KEYWORD)
        return

    kind = type_ref.kind
    element = type_ref.element
    if kind is TypeKind.POINTER:
        yield from format_type(element, config)
        yield Span(sym.POINTER, TokenRole.PUNCTUATION)
    elif kind is TypeKind.ARRAY:
        yield from format_type(element, config)
        yield Span(sym.ARRAY, TokenRole.PUNCTUATION)
    elif kind is TypeKind.BYREF:
        keyword = sym.OUT if is_out else sym.REF
        yield Span(keyword + sym.SPACE, TokenRole.KEYWORD)
        yield from format_type(element, config)
    elif kind is TypeKind.NULLABLE:
        yield from format_type(element, config)
        yield Span(sym.NULLABLE, TokenRole.PUNCTUATION)
    else:
        if kind is not TypeKind.GENERIC_PARAMETER and type_ref.declaring_type:
            yield from format_type(type_ref.declaring_type, config)
            yield Span(sym.MEMBER_SEPARATOR, TokenRole.PUNCTUATION)
        yield Span(bare_name(type_ref.name), type_role(type_ref))
        if kind is not TypeKind.GENERIC_PARAMETER:
            yield from format_generic_args(type_ref.generic_args, config)


def format_generic_args(args, config: CleanerConfig) -> Iterator[Span]:
    """``<A, B>`` with each argument fully expanded; nothing for no arguments."""
    if not args:
        return
    yield Span(sym.GENERIC_OPEN, TokenRole.PUNCTUATION)
    for i, arg in enumerate(args):
        if i:
            yield Span(sym.LIST_SEPARATOR, TokenRole.PUNCTUATION)
        yield from format_type(arg, config)
    yield Span(sym.GENERIC_CLOSE, TokenRole.PUNCTUATION)
