from __future__ import annotations

import contextlib
import sys
from typing import Any

from .html import html_traceback
from .logging import logger
from .tty import tty_traceback


def _can_display_html() -> bool:
    # Spyder runs IPython ZMQInteractiveShell but lacks HTML support. Using
    # argv seems like the most portable way to autodetect HTML capability.
    return any(name in sys.argv[0] for name in ["ipykernel", "colab_kernel_launcher"])


def load_ipython_extension(ipython: Any) -> None:
    """``%load_ext stackrite``: show exceptions as cleaned stacks."""

    def showtraceback(*args: Any, **kwargs: Any) -> None:
        try:
            if _can_display_html():
                from IPython.display import display  # type: ignore[import]

                display(html_traceback())
            else:
                tty_traceback()
        except Exception:
            # Fall back to built-in showtraceback
            ipython.__class__.showtraceback(ipython, *args, **kwargs)

    try:
        ipython.showtraceback = showtraceback
    except Exception:
        logger.error("Unable to load StackRite (please report a bug!)")
        raise


def unload_ipython_extension(ipython: Any) -> None:
    with contextlib.suppress(AttributeError):
        del ipython.showtraceback
