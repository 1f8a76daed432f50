"""Span sequence to text, for every supported color format.

The renderer is a single forward pass. It keeps track of the role whose
color is currently open and writes start/end markup only when the role
changes, so runs of equally colored spans share one color sequence.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Iterable, Iterator
from typing import Any

from html5tagger.util import escape  # type: ignore[import]

from .colors import (
    ANSI_FOREGROUND,
    BACKGROUND_CLASS_NAME,
    CLASS_NAMES,
    Color4Config,
    hex_color,
)
from .config import CleanerConfig, ColorFormat
from .tokens import Span, TokenRole

ESC = "\x1b["
RESET = f"{ESC}39m"
NEWLINE = "\n"

UNITY_END = "</color>"
HTML_END = "</span>"
DIV_END = "</div>"

# Stand-ins for angle brackets inside rich text
RICH_TEXT_ESCAPES = str.maketrans({"<": "‹", ">": "›"})

ANSI_FORMATS = {ColorFormat.ANSI, ColorFormat.ANSI_NO_BRIGHT, ColorFormat.EXTENDED_ANSI}
RICH_TEXT_FORMATS = {ColorFormat.UNITY, ColorFormat.TEXTMESHPRO}
COLORED_FORMATS = ANSI_FORMATS | RICH_TEXT_FORMATS | {ColorFormat.HTML}
END_TAG_FORMATS = {ColorFormat.UNITY, ColorFormat.HTML}


def effective_format(config: CleanerConfig, console_tty: bool = False) -> ColorFormat:
    """The format actually written for a configuration and destination.

    Console-native color is only meaningful on an interactive terminal and
    is written as ANSI there, plain text elsewhere. 24-bit output from a
    16-color table is written as plain ANSI.
    """
    fmt = config.color_format
    if fmt is ColorFormat.CONSOLE:
        return ColorFormat.ANSI if console_tty else ColorFormat.NONE
    if fmt is ColorFormat.EXTENDED_ANSI and isinstance(config.colors, Color4Config):
        return ColorFormat.ANSI
    return fmt


class Renderer:
    def __init__(self, config: CleanerConfig, color_format: ColorFormat | None = None):
        self.config = config
        self.colors = config.colors
        self.format = color_format or effective_format(config)
        self.append_color = self.format in COLORED_FORMATS
        self.end_tags = self.format in END_TAG_FORMATS
        self.html = self.format is ColorFormat.HTML

    def start_tag(self, role: TokenRole) -> str:
        fmt = self.format
        if fmt is ColorFormat.ANSI or fmt is ColorFormat.ANSI_NO_BRIGHT:
            color = self.colors.console(role, bright=fmt is ColorFormat.ANSI)
            return f"{ESC}{ANSI_FOREGROUND[color]}m"
        if fmt is ColorFormat.EXTENDED_ANSI:
            rgb = self.colors.rgb(role)
            return f"{ESC}38;2;{(rgb >> 16) & 0xFF};{(rgb >> 8) & 0xFF};{rgb & 0xFF}m"
        if fmt is ColorFormat.UNITY:
            return f"<color=#{hex_color(self.colors.rgb(role))}>"
        if fmt is ColorFormat.TEXTMESHPRO:
            return f"<#{hex_color(self.colors.rgb(role))}>"
        if fmt is ColorFormat.HTML:
            if self.config.html_use_class_names:
                return f'<span class="{CLASS_NAMES.get(role, "")}">'
            return f'<span style="color:#{hex_color(self.colors.rgb(role))};">'
        return ""

    def end_tag(self) -> str:
        return UNITY_END if self.format is ColorFormat.UNITY else HTML_END

    def div_tag(self) -> str:
        if self.config.html_use_class_names:
            return f'<div class="{BACKGROUND_CLASS_NAME}">'
        return f'<div style="background-color:#{hex_color(self.colors.background_rgb())};">'

    def text(self, text: str) -> str:
        if self.html:
            return str(escape(text))
        if self.format in RICH_TEXT_FORMATS:
            return text.translate(RICH_TEXT_ESCAPES)
        return text

    def encode(self, spans: Iterable[Span], terminate: bool = True) -> Iterator[str]:
        """Output chunks for spans. ``terminate`` ends non-HTML output with a newline."""
        current = None
        div = False
        for text, role in spans:
            if self.html and not div and self.config.html_write_outer_div:
                yield self.div_tag()
                div = True
            if role is TokenRole.END_TAG:
                # Structural markup, written as is after closing the open color
                if current is not None and self.end_tags:
                    yield self.end_tag()
                current = None
                yield text
                continue
            if role is not TokenRole.SPACE and role != current:
                if current is not None and self.end_tags:
                    yield self.end_tag()
                if self.append_color:
                    yield self.start_tag(role)
                    current = role
            yield self.text(text)
        if current is not None and self.end_tags:
            yield self.end_tag()
        if div:
            yield DIV_END
        if self.format in ANSI_FORMATS:
            yield RESET
        if terminate and not self.html:
            yield NEWLINE

    def render(self, spans: Iterable[Span], sink: Any, terminate: bool = True) -> None:
        """Write the chunks to anything with a ``write(str)`` method."""
        write = sink.write
        for chunk in self.encode(spans, terminate):
            write(chunk)

    def to_string(self, spans: Iterable[Span], terminate: bool = True) -> str:
        return "".join(self.encode(spans, terminate))

    async def render_async(
        self,
        spans: Iterable[Span],
        sink: Any,
        terminate: bool = True,
        cancel: asyncio.Event | None = None,
    ) -> None:
        """Write to a sink whose ``write`` may be a coroutine.

        ``cancel`` is checked between chunks; once set the render stops with
        CancelledError. Chunks already written stay written.
        """
        write = sink.write
        drain = getattr(sink, "drain", None)
        for chunk in self.encode(spans, terminate):
            if cancel is not None and cancel.is_set():
                raise asyncio.CancelledError()
            result = write(chunk)
            if inspect.isawaitable(result):
                await result
        if callable(drain):
            result = drain()
            if inspect.isawaitable(result):
                await result
