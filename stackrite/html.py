from __future__ import annotations

import sys
from typing import Any

from html5tagger import HTML, E  # type: ignore[import]

from .cleaner import StackCleaner
from .colors import BACKGROUND_CLASS_NAME, CLASS_NAMES, Color32Config, ColorConfig, hex_color
from .config import CleanerConfig, ColorFormat
from .errors import ConfigurationError


def stylesheet(colors: ColorConfig | None = None) -> str:
    """CSS for class-name mode, one rule per role of the color table."""
    if colors is None:
        colors = Color32Config.default()
    rules = [
        f".{BACKGROUND_CLASS_NAME} {{background-color: #{hex_color(colors.background_rgb())};"
        " padding: .5em 1em; font-family: monospace; overflow-x: auto}",
        f".{BACKGROUND_CLASS_NAME} p {{margin: 0; white-space: pre}}",
    ]
    rules += [
        f".{name} {{color: #{hex_color(colors.rgb(role))}}}"
        for role, name in CLASS_NAMES.items()
    ]
    return "\n".join(rules)


def html_cleaner(colors: ColorConfig | None = None, **options: Any) -> StackCleaner:
    """StackCleaner writing HTML with CSS classes."""
    options.setdefault("html_use_class_names", True)
    config = CleanerConfig(
        color_format=ColorFormat.HTML,
        colors=colors if colors is not None else Color32Config.default(),
        **options,
    )
    return StackCleaner(config)


def html_traceback(
    obj: Any = None,
    *,
    cleaner: StackCleaner | None = None,
    include_css: bool = True,
) -> Any:
    """html5tagger element with the cleaned stack of an exception or trace.

    Without arguments the exception currently being handled is used.
    """
    if obj is None:
        obj = sys.exc_info()[1]
    if cleaner is None:
        cleaner = html_cleaner()
    config = cleaner.config
    if config.color_format is not ColorFormat.HTML:
        raise ConfigurationError("html_traceback needs a cleaner with the HTML format")
    markup = cleaner.get_string(obj)
    with E.div(class_="stackrite") as doc:
        if include_css and config.html_use_class_names:
            doc._style(stylesheet(config.colors))
        if isinstance(obj, BaseException):
            exc_type = type(obj).__name__
            doc.h3(E.span(f"{exc_type}:", class_="exctype")(f" {obj}"))
        doc(HTML(markup))
    return doc
