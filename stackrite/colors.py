"""Color tables mapping token roles to colors.

Two table shapes exist: ``Color4Config`` holds 16-color console palette
entries and ``Color32Config`` holds 24-bit RGB values. The renderer converts
between the two when the output format needs the other shape.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any

from .errors import ConfigurationError, ConfigurationFrozenError
from .tokens import TokenRole


class ConsoleColor(IntEnum):
    """Classic 16-color console palette (bit 4 red, 2 green, 1 blue, 8 bright)."""

    BLACK = 0
    DARK_BLUE = 1
    DARK_GREEN = 2
    DARK_CYAN = 3
    DARK_RED = 4
    DARK_MAGENTA = 5
    DARK_YELLOW = 6
    GRAY = 7
    DARK_GRAY = 8
    BLUE = 9
    GREEN = 10
    CYAN = 11
    RED = 12
    MAGENTA = 13
    YELLOW = 14
    WHITE = 15


BRIGHT = 8

# Windows 10 console defaults
CONSOLE_RGB = {
    ConsoleColor.BLACK: 0x0C0C0C,
    ConsoleColor.DARK_RED: 0xC50F1F,
    ConsoleColor.DARK_GREEN: 0x13A10E,
    ConsoleColor.DARK_YELLOW: 0xC19C00,
    ConsoleColor.DARK_BLUE: 0x0037DA,
    ConsoleColor.DARK_MAGENTA: 0x881798,
    ConsoleColor.DARK_CYAN: 0x3A96DD,
    ConsoleColor.GRAY: 0xCCCCCC,
    ConsoleColor.DARK_GRAY: 0x767676,
    ConsoleColor.RED: 0xE74856,
    ConsoleColor.GREEN: 0x16C60C,
    ConsoleColor.YELLOW: 0xF9F1A5,
    ConsoleColor.BLUE: 0x3B78FF,
    ConsoleColor.MAGENTA: 0xB4009E,
    ConsoleColor.CYAN: 0x61D6D6,
    ConsoleColor.WHITE: 0xF2F2F2,
}

# SGR foreground codes
ANSI_FOREGROUND = {
    ConsoleColor.BLACK: 30,
    ConsoleColor.DARK_RED: 31,
    ConsoleColor.DARK_GREEN: 32,
    ConsoleColor.DARK_YELLOW: 33,
    ConsoleColor.DARK_BLUE: 34,
    ConsoleColor.DARK_MAGENTA: 35,
    ConsoleColor.DARK_CYAN: 36,
    ConsoleColor.GRAY: 37,
    ConsoleColor.DARK_GRAY: 90,
    ConsoleColor.RED: 91,
    ConsoleColor.GREEN: 92,
    ConsoleColor.YELLOW: 93,
    ConsoleColor.BLUE: 94,
    ConsoleColor.MAGENTA: 95,
    ConsoleColor.CYAN: 96,
    ConsoleColor.WHITE: 97,
}

# CSS class per role for HTML class-name mode
CLASS_NAMES = {
    TokenRole.KEYWORD: "st_keyword",
    TokenRole.METHOD: "st_method",
    TokenRole.PROPERTY: "st_property",
    TokenRole.EVENT: "st_event",
    TokenRole.PARAMETER: "st_parameter",
    TokenRole.CLASS: "st_class",
    TokenRole.STRUCT: "st_struct",
    TokenRole.FLOW_KEYWORD: "st_flow_keyword",
    TokenRole.INTERFACE: "st_interface",
    TokenRole.GENERIC_PARAMETER: "st_generic_parameter",
    TokenRole.ENUM: "st_enum",
    TokenRole.NAMESPACE: "st_namespace",
    TokenRole.PUNCTUATION: "st_punctuation",
    TokenRole.EXTRA_DATA: "st_extra_data",
    TokenRole.LINES_HIDDEN_WARNING: "st_lines_hidden_warning",
}
BACKGROUND_CLASS_NAME = "st_bkgr"


def to_console_color(rgb: int, bright: bool = True) -> ConsoleColor:
    """Nearest palette entry for an RGB value."""
    r, g, b = (rgb >> 16) & 0xFF, (rgb >> 8) & 0xFF, rgb & 0xFF
    bits = BRIGHT if bright and (r > 128 or g > 128 or b > 128) else 0
    if r > 180:
        bits |= 4
    if g > 180:
        bits |= 2
    if b > 180:
        bits |= 1
    return ConsoleColor(bits)


def to_rgb(color: ConsoleColor) -> int:
    return CONSOLE_RGB[ConsoleColor(color)]


def hex_color(rgb: int) -> str:
    return f"{rgb & 0xFFFFFF:06x}"


def parse_rgb(value: Any) -> int:
    """Accept 0xRRGGBB, (r, g, b) or "#rrggbb"."""
    if isinstance(value, str):
        text = value.lstrip("#")
        if len(text) == 6:
            try:
                return int(text, 16)
            except ValueError:
                pass
    elif isinstance(value, tuple) and len(value) == 3:
        if all(isinstance(c, int) and 0 <= c <= 255 for c in value):
            r, g, b = value
            return (r << 16) | (g << 8) | b
    elif isinstance(value, int) and not isinstance(value, bool):
        if 0 <= value <= 0xFFFFFF:
            return value
    raise ConfigurationError(f"Not an RGB color: {value!r}")


class ColorConfig:
    """Role to color lookup with a one-way freeze switch."""

    defaults: dict[TokenRole, Any] = {}
    default_background: Any = None
    # Color used for roles without an entry (Space, EndTag)
    fallback: Any = None

    def __init__(self, colors: dict | None = None, html_background: Any = None):
        self._frozen = False
        self._colors = {role: self.defaults[role] for role in self.defaults}
        self._html_background = self.default_background
        for role, value in (colors or {}).items():
            self[role] = value
        if html_background is not None:
            self.html_background = html_background

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} frozen={self._frozen}>"

    def _convert(self, value: Any) -> Any:
        raise NotImplementedError

    def __getitem__(self, role: TokenRole) -> Any:
        return self._colors.get(TokenRole(role), self.fallback)

    def __setitem__(self, role: TokenRole, value: Any) -> None:
        if self._frozen:
            raise ConfigurationFrozenError("Color configuration is frozen.")
        try:
            role = TokenRole(role)
        except ValueError:
            raise ConfigurationError(f"Unknown token role: {role!r}") from None
        if role in (TokenRole.SPACE, TokenRole.END_TAG):
            raise ConfigurationError(f"{role.name} spans are never colored")
        self._colors[role] = self._convert(value)

    @property
    def html_background(self) -> Any:
        return self._html_background

    @html_background.setter
    def html_background(self, value: Any) -> None:
        if self._frozen:
            raise ConfigurationFrozenError("Color configuration is frozen.")
        self._html_background = self._convert(value)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self):
        self._frozen = True
        return self

    def copy(self):
        """Unfrozen copy of this table."""
        clone = self.__class__()
        clone._colors = dict(self._colors)
        clone._html_background = self._html_background
        return clone

    def rgb(self, role: TokenRole) -> int:
        raise NotImplementedError

    def console(self, role: TokenRole, bright: bool = True) -> ConsoleColor:
        raise NotImplementedError

    def background_rgb(self) -> int:
        raise NotImplementedError

    _default = None

    @classmethod
    def default(cls):
        """Shared frozen instance with the default colors."""
        if cls.__dict__.get("_default") is None:
            cls._default = cls().freeze()
        return cls._default


class Color4Config(ColorConfig):
    """Console palette colors, one ConsoleColor per role."""

    defaults = {
        TokenRole.KEYWORD: ConsoleColor.BLUE,
        TokenRole.METHOD: ConsoleColor.DARK_YELLOW,
        TokenRole.PROPERTY: ConsoleColor.WHITE,
        TokenRole.EVENT: ConsoleColor.WHITE,
        TokenRole.PARAMETER: ConsoleColor.CYAN,
        TokenRole.CLASS: ConsoleColor.DARK_GREEN,
        TokenRole.STRUCT: ConsoleColor.GREEN,
        TokenRole.FLOW_KEYWORD: ConsoleColor.MAGENTA,
        TokenRole.INTERFACE: ConsoleColor.YELLOW,
        TokenRole.GENERIC_PARAMETER: ConsoleColor.YELLOW,
        TokenRole.ENUM: ConsoleColor.YELLOW,
        TokenRole.NAMESPACE: ConsoleColor.GRAY,
        TokenRole.PUNCTUATION: ConsoleColor.DARK_GRAY,
        TokenRole.EXTRA_DATA: ConsoleColor.DARK_GRAY,
        TokenRole.LINES_HIDDEN_WARNING: ConsoleColor.YELLOW,
    }
    default_background = ConsoleColor.BLACK
    fallback = ConsoleColor.GRAY

    def _convert(self, value: Any) -> ConsoleColor:
        if isinstance(value, str):
            try:
                return ConsoleColor[value.upper()]
            except KeyError:
                raise ConfigurationError(f"Unknown console color: {value!r}") from None
        try:
            return ConsoleColor(value)
        except ValueError:
            raise ConfigurationError(f"Unknown console color: {value!r}") from None

    def rgb(self, role: TokenRole) -> int:
        return to_rgb(self[role])

    def console(self, role: TokenRole, bright: bool = True) -> ConsoleColor:
        color = self[role]
        return color if bright else ConsoleColor(color & ~BRIGHT)

    def background_rgb(self) -> int:
        return to_rgb(self.html_background)


class Color32Config(ColorConfig):
    """24-bit colors, one 0xRRGGBB integer per role."""

    defaults = {
        TokenRole.KEYWORD: 0x569CD6,
        TokenRole.METHOD: 0xDCDCAA,
        TokenRole.PROPERTY: 0xDCDCDC,
        TokenRole.EVENT: 0xDCDCDC,
        TokenRole.PARAMETER: 0x9CDCFE,
        TokenRole.CLASS: 0x4EC9B0,
        TokenRole.STRUCT: 0x86C691,
        TokenRole.FLOW_KEYWORD: 0xD8A0DF,
        TokenRole.INTERFACE: 0xB8D7A3,
        TokenRole.GENERIC_PARAMETER: 0xB8D7A3,
        TokenRole.ENUM: 0xB8D7A3,
        TokenRole.NAMESPACE: 0xDCDCDC,
        TokenRole.PUNCTUATION: 0xB4B4B4,
        TokenRole.EXTRA_DATA: 0x626262,
        TokenRole.LINES_HIDDEN_WARNING: 0xDCDC00,
    }
    default_background = 0x1E1E1E
    fallback = 0xFFFFFF

    def _convert(self, value: Any) -> int:
        return parse_rgb(value)

    def rgb(self, role: TokenRole) -> int:
        return self[role]

    def console(self, role: TokenRole, bright: bool = True) -> ConsoleColor:
        return to_console_color(self[role], bright)

    def background_rgb(self) -> int:
        return self.html_background
