from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

from . import tokens as sym
from .config import CleanerConfig, ColorFormat
from .descriptors import OFFSET_UNAVAILABLE, FrameRef, ModuleRef, StackTrace
from .errors import MetadataError
from .logging import logger
from .member import StateMachineCache, format_member
from .tokens import Span, TokenRole

NEWLINE = "\n"


def shorten_path(filename: str) -> str:
    """Last directory and file name, relative to the working directory if inside it."""
    fn = Path(filename)
    try:
        cwd = Path.cwd()
    except OSError:
        cwd = None
    if cwd is not None and fn.is_absolute() and cwd in fn.parents:
        fn = fn.relative_to(cwd)
    if len(fn.parts) < 2:
        return fn.as_posix()
    return f"{fn.parent.name or sym.ROOT_DIRECTORY}/{fn.name}"


def source_data(frame: FrameRef, config: CleanerConfig) -> str:
    """Space-prefixed line, column, offset and file fields that are available."""
    fmt = config.number_formatter
    text = ""
    if config.include_line_data:
        if frame.line:
            text += sym.SPACE + sym.LINE_PREFIX + fmt(frame.line)
        if frame.column:
            text += sym.SPACE + sym.COLUMN_PREFIX + fmt(frame.column)
    if config.include_il_offset and frame.offset != OFFSET_UNAVAILABLE:
        text += f" {sym.OFFSET_PREFIX} [0x{frame.offset:06X}]"
    if config.include_file_data:
        try:
            filename = frame.get_file_name()
        except (OSError, MetadataError) as e:
            logger.debug("File name of %r unavailable: %s", frame.method, e)
            filename = None
        if filename:
            text += sym.SPACE + sym.FILE_PREFIX + sym.QUOTE + shorten_path(filename) + sym.QUOTE
    return text


def _new_line_spans(paragraphs: bool, new_line: bool) -> Iterator[Span]:
    if paragraphs and new_line:
        yield Span(sym.PARAGRAPH_CLOSE, TokenRole.END_TAG)
        yield Span(sym.PARAGRAPH_OPEN, TokenRole.END_TAG)


def format_module(
    module: ModuleRef | None, config: CleanerConfig, paragraphs: bool
) -> Iterator[Span]:
    """Qualified name and on-disk location of the frame's module."""
    if module is None:
        return
    new_line = config.put_source_data_on_new_line
    lead = NEWLINE + sym.SPACE if new_line and not paragraphs else sym.SPACE
    name = module.qualified_name or module.name
    if name:
        yield from _new_line_spans(paragraphs, new_line)
        yield Span(lead + sym.MODULE_PREFIX + name + sym.QUOTE, TokenRole.EXTRA_DATA)
    if not config.include_file_data:
        return
    try:
        location = module.get_location()
    except (OSError, MetadataError) as e:
        logger.debug("Location of module %s unavailable: %s", module.name, e)
        return
    if location:
        yield from _new_line_spans(paragraphs, new_line)
        yield Span(
            lead + sym.LOCATION_PREFIX + shorten_path(location) + sym.QUOTE,
            TokenRole.EXTRA_DATA,
        )


def format_trace(
    trace: StackTrace,
    config: CleanerConfig,
    warn_if_hidden: bool = True,
    cache: StateMachineCache | None = None,
) -> Iterator[Span]:
    """Spans of a whole stack trace, one `` at `` line per visible frame."""
    if cache is None:
        cache = StateMachineCache()
    paragraphs = config.color_format is ColorFormat.HTML
    sent_one = False
    any_hidden = False
    for frame in trace.frames:
        method = frame.method if frame is not None else None
        if method is None:
            continue
        if frame.hidden or config.is_hidden(method.declaring_type):
            any_hidden = True
            continue
        if paragraphs:
            yield Span(sym.PARAGRAPH_OPEN, TokenRole.END_TAG)
            yield Span(sym.AT_PREFIX, TokenRole.FLOW_KEYWORD)
        elif sent_one:
            yield Span(NEWLINE + sym.AT_PREFIX, TokenRole.FLOW_KEYWORD)
        else:
            yield Span(sym.AT_PREFIX, TokenRole.FLOW_KEYWORD)
        sent_one = True

        yield from format_member(method, config, cache)

        if config.include_source_data:
            extra = source_data(frame, config)
            if extra:
                new_line = config.put_source_data_on_new_line
                yield from _new_line_spans(paragraphs, new_line)
                if new_line and not paragraphs:
                    extra = NEWLINE + extra
                yield Span(extra, TokenRole.EXTRA_DATA)
        if config.include_assembly_data:
            yield from format_module(method.get_module(), config, paragraphs)
        if paragraphs:
            yield Span(sym.PARAGRAPH_CLOSE, TokenRole.END_TAG)

    if any_hidden and config.warn_for_hidden_lines and warn_if_hidden:
        if paragraphs:
            yield Span(sym.PARAGRAPH_OPEN, TokenRole.END_TAG)
            yield Span(sym.HIDDEN_LINES_WARNING, TokenRole.LINES_HIDDEN_WARNING)
            yield Span(sym.PARAGRAPH_CLOSE, TokenRole.END_TAG)
        else:
            lead = NEWLINE if sent_one else ""
            yield Span(lead + sym.HIDDEN_LINES_WARNING, TokenRole.LINES_HIDDEN_WARNING)
