from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Callable

from .colors import Color4Config, Color32Config, ColorConfig
from .descriptors import TypeRef
from .errors import ArgumentError, ConfigurationError, ConfigurationFrozenError


class ColorFormat(Enum):
    NONE = "none"
    CONSOLE = "console"
    ANSI = "ansi"
    ANSI_NO_BRIGHT = "ansi_no_bright"
    EXTENDED_ANSI = "extended_ansi"
    UNITY = "unity"
    TEXTMESHPRO = "textmeshpro"
    HTML = "html"


DEFAULT_HIDDEN_TYPES = frozenset(
    {
        # .NET task plumbing
        "System.Threading.ExecutionContext",
        "System.Runtime.CompilerServices.TaskAwaiter",
        "System.Runtime.CompilerServices.TaskAwaiter`1",
        "System.Runtime.CompilerServices.ConfiguredTaskAwaitable.ConfiguredTaskAwaiter",
        "System.Runtime.CompilerServices.ConfiguredTaskAwaitable`1.ConfiguredTaskAwaiter",
        "System.Runtime.ExceptionServices.ExceptionDispatchInfo",
        # asyncio and executor plumbing
        "asyncio.events.Handle",
        "asyncio.base_events.BaseEventLoop",
        "concurrent.futures.thread._WorkItem",
    }
)


def type_identity(entry: Any) -> str:
    """Dotted name used to compare hidden types with declaring types."""
    if isinstance(entry, str):
        return entry
    if isinstance(entry, TypeRef):
        return entry.full_name
    if isinstance(entry, type):
        return f"{entry.__module__}.{entry.__qualname__}"
    raise ConfigurationError(f"Not a type or type name: {entry!r}")


def _normalize_hidden(value: Any) -> frozenset:
    if value is None:
        return frozenset()
    if isinstance(value, (str, type, TypeRef)):
        value = [value]
    if not isinstance(value, Iterable):
        raise ConfigurationError(f"hidden_types must be iterable, not {value!r}")
    return frozenset(type_identity(v) for v in value)


def _normalize_format(value: Any) -> ColorFormat:
    try:
        return ColorFormat(value)
    except ValueError:
        raise ConfigurationError(f"Unknown color format: {value!r}") from None


def _validate_colors(value: Any) -> ColorConfig:
    if not isinstance(value, (Color4Config, Color32Config)):
        raise ArgumentError(
            "colors must be a Color4Config or Color32Config, "
            f"not {type(value).__name__}"
        )
    return value


def _validate_formatter(value: Any) -> Callable[[int], str]:
    if not callable(value):
        raise ConfigurationError("number_formatter must be callable")
    return value


_NORMALIZERS = {
    "color_format": _normalize_format,
    "colors": _validate_colors,
    "hidden_types": _normalize_hidden,
    "number_formatter": _validate_formatter,
}


@dataclass
class CleanerConfig:
    """Formatting options of a StackCleaner.

    The configuration can be changed freely until it is frozen, which happens
    when it is handed to a StackCleaner. After that any assignment raises
    ConfigurationFrozenError; use ``copy()`` to derive a new configuration.
    """

    color_format: ColorFormat = ColorFormat.NONE
    colors: ColorConfig = field(default_factory=Color4Config.default)
    include_source_data: bool = True
    include_line_data: bool = True
    include_il_offset: bool = False
    include_file_data: bool = False
    include_assembly_data: bool = False
    warn_for_hidden_lines: bool = False
    put_source_data_on_new_line: bool = True
    include_namespaces: bool = True
    use_type_aliases: bool = True
    html_use_class_names: bool = False
    html_write_outer_div: bool = True
    hidden_types: frozenset = DEFAULT_HIDDEN_TYPES
    number_formatter: Callable[[int], str] = str
    frozen: bool = field(default=False, repr=False, compare=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if self.__dict__.get("frozen"):
            raise ConfigurationFrozenError()
        normalize = _NORMALIZERS.get(name)
        if normalize is not None:
            value = normalize(value)
        super().__setattr__(name, value)

    def freeze(self) -> CleanerConfig:
        if not self.frozen:
            self.colors.freeze()
            object.__setattr__(self, "frozen", True)
        return self

    def copy(self) -> CleanerConfig:
        """Unfrozen copy; the color table is copied too."""
        values = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "frozen"}
        values["colors"] = self.colors.copy()
        return CleanerConfig(**values)

    def is_hidden(self, type_ref: TypeRef | None) -> bool:
        """Whether frames of this declaring type are suppressed."""
        if type_ref is None:
            return False
        if type_ref.full_name in self.hidden_types:
            return True
        definition = type_ref.generic_definition
        return definition is not None and definition.full_name in self.hidden_types

    _default = None

    @classmethod
    def default(cls) -> CleanerConfig:
        """Shared frozen configuration with all defaults."""
        if cls._default is None:
            cls._default = cls().freeze()
        return cls._default
