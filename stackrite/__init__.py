from .cleaner import StackCleaner
from .colors import Color4Config, Color32Config, ConsoleColor
from .config import CleanerConfig, ColorFormat
from .descriptors import FrameRef, MethodRef, StackTrace, TypeRef
from .errors import (
    ArgumentError,
    ConfigurationError,
    ConfigurationFrozenError,
    StackCleanerError,
)
from .html import html_traceback
from .notebook import load_ipython_extension, unload_ipython_extension
from .tokens import Span, TokenRole
from .tty import load, tty_traceback, unload

__all__ = [
    "StackCleaner",
    "CleanerConfig",
    "ColorFormat",
    "Color4Config",
    "Color32Config",
    "ConsoleColor",
    "StackTrace",
    "FrameRef",
    "MethodRef",
    "TypeRef",
    "Span",
    "TokenRole",
    "StackCleanerError",
    "ArgumentError",
    "ConfigurationError",
    "ConfigurationFrozenError",
    "load",
    "unload",
    "tty_traceback",
    "html_traceback",
    "load_ipython_extension",
    "unload_ipython_extension",
]
