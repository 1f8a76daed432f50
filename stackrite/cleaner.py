from __future__ import annotations

import asyncio
import codecs
import inspect
import sys
import types
import typing
from collections.abc import Iterator
from pathlib import Path
from typing import Any, TextIO

from .config import CleanerConfig
from .descriptors import MethodRef, StackTrace, TypeRef
from .errors import ArgumentError, SinkError
from .frames import format_trace
from .member import StateMachineCache, format_member
from .render import Renderer, effective_format
from .trace import describe_function, describe_type, extract_trace
from .typename import format_type

DEFAULT_ENCODING = "utf-8"


class _EncodingSink:
    """Text sink that encodes chunks onto a binary stream."""

    def __init__(self, stream: Any, encoding: str):
        self.stream = stream
        self.encoder = codecs.getincrementalencoder(encoding)()
        drain = getattr(stream, "drain", None)
        if callable(drain):
            self.drain = drain

    def write(self, chunk: str) -> Any:
        return self.stream.write(self.encoder.encode(chunk))

    def flush(self) -> Any:
        tail = self.encoder.encode("", final=True)
        if tail:
            self.stream.write(tail)
        flush = getattr(self.stream, "flush", None)
        return flush() if callable(flush) else None

    async def aflush(self) -> None:
        tail = self.encoder.encode("", final=True)
        if tail:
            await _maybe_await(self.stream.write(tail))
            if hasattr(self, "drain"):
                await _maybe_await(self.drain())
        flush = getattr(self.stream, "flush", None)
        if callable(flush):
            await _maybe_await(flush())


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


def _check_writable(stream: Any, name: str = "stream") -> None:
    if stream is None:
        raise ArgumentError(f"{name} must not be None")
    writable = getattr(stream, "writable", None)
    if callable(writable) and not writable():
        raise SinkError(f"{name} must be able to write.")
    if not callable(getattr(stream, "write", None)):
        raise SinkError(f"{name} has no write method.")


class StackCleaner:
    """Formats stack traces, exceptions, types and methods with one configuration.

    The configuration is frozen when the cleaner is created. Instances can be
    shared between threads; each call builds its own span sequence.
    """

    _default = None

    def __init__(
        self,
        config: CleanerConfig | None = None,
        cache: StateMachineCache | None = None,
    ):
        if config is None:
            config = CleanerConfig.default()
        if not isinstance(config, CleanerConfig):
            raise ArgumentError(f"Expected CleanerConfig, got {type(config).__name__}")
        self.config = config.freeze()
        self.cache = cache if cache is not None else StateMachineCache()

    @classmethod
    def default(cls) -> StackCleaner:
        if cls._default is None:
            cls._default = cls()
        return cls._default

    def spans(self, obj: Any) -> tuple[Iterator | None, bool]:
        """Span sequence for obj and whether a line terminator follows it.

        Accepts a StackTrace, an exception, a traceback, a type (TypeRef or
        Python class) or a method (MethodRef or Python function). A trace
        without frames yields None.
        """
        config = self.config
        if obj is None:
            raise ArgumentError("Nothing to format: got None")
        if isinstance(obj, StackTrace):
            trace = obj
        elif isinstance(obj, BaseException):
            trace = StackTrace.from_exception(obj, config.include_source_data)
        elif isinstance(obj, types.TracebackType):
            trace = extract_trace(obj, config.include_source_data)
        elif isinstance(obj, TypeRef):
            return format_type(obj, config), False
        elif isinstance(obj, MethodRef):
            return format_member(obj, config, self.cache), False
        elif isinstance(obj, type) or typing.get_origin(obj) is not None:
            return format_type(describe_type(obj), config), False
        elif inspect.isfunction(obj) or inspect.ismethod(obj) or hasattr(obj, "__func__"):
            return format_member(describe_function(obj), config, self.cache), False
        else:
            raise ArgumentError(f"Cannot format {type(obj).__name__} objects")
        if not trace.frames:
            return None, False
        return format_trace(trace, config, True, self.cache), True

    def get_string(self, obj: Any) -> str:
        spans, terminate = self.spans(obj)
        if spans is None:
            return ""
        return Renderer(self.config).to_string(spans, terminate)

    def write_to_text_writer(self, obj: Any, writer: Any) -> None:
        """Write to any object with a ``write(str)`` method."""
        _check_writable(writer, "writer")
        spans, terminate = self.spans(obj)
        if spans is not None:
            Renderer(self.config).render(spans, writer, terminate)

    def write_to_stream(self, stream: Any, obj: Any, encoding: str | None = None) -> None:
        """Encode onto a binary stream (UTF-8 unless ``encoding`` is given)."""
        _check_writable(stream)
        spans, terminate = self.spans(obj)
        if spans is None:
            return
        sink = _EncodingSink(stream, encoding or DEFAULT_ENCODING)
        Renderer(self.config).render(spans, sink, terminate)
        sink.flush()

    def write_to_file(
        self, path: str | Path, obj: Any, encoding: str | None = None
    ) -> None:
        if path is None:
            raise ArgumentError("path must not be None")
        spans, terminate = self.spans(obj)
        with open(path, "w", encoding=encoding or DEFAULT_ENCODING) as f:
            if spans is not None:
                Renderer(self.config).render(spans, f, terminate)

    def write_to_console(self, obj: Any, file: TextIO | None = None) -> None:
        """Write to a console stream, stderr by default.

        Console-native color is only used when the stream is a terminal.
        """
        if file is None:
            file = sys.stderr
        spans, terminate = self.spans(obj)
        if spans is None:
            return
        is_tty = file.isatty() if hasattr(file, "isatty") else False
        renderer = Renderer(self.config, effective_format(self.config, is_tty))
        renderer.render(spans, file, terminate)
        flush = getattr(file, "flush", None)
        if callable(flush):
            flush()

    async def write_to_text_writer_async(
        self, obj: Any, writer: Any, cancel: asyncio.Event | None = None
    ) -> None:
        """Like write_to_text_writer, awaiting writers whose ``write`` is a coroutine."""
        _check_writable(writer, "writer")
        spans, terminate = self.spans(obj)
        if spans is not None:
            await Renderer(self.config).render_async(spans, writer, terminate, cancel)

    async def write_to_stream_async(
        self,
        stream: Any,
        obj: Any,
        encoding: str | None = None,
        cancel: asyncio.Event | None = None,
    ) -> None:
        """Encode onto a binary stream such as an asyncio StreamWriter."""
        _check_writable(stream)
        spans, terminate = self.spans(obj)
        if spans is None:
            return
        sink = _EncodingSink(stream, encoding or DEFAULT_ENCODING)
        await Renderer(self.config).render_async(spans, sink, terminate, cancel)
        await sink.aflush()
