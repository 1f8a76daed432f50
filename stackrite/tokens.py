from __future__ import annotations

from collections import namedtuple
from enum import IntEnum


class TokenRole(IntEnum):
    """Semantic category of a span, driving its color and markup."""

    SPACE = 0
    KEYWORD = 1
    METHOD = 2
    PROPERTY = 3
    PARAMETER = 4
    CLASS = 5
    STRUCT = 6
    FLOW_KEYWORD = 7
    INTERFACE = 8
    GENERIC_PARAMETER = 9
    ENUM = 10
    NAMESPACE = 11
    PUNCTUATION = 12
    EXTRA_DATA = 13
    LINES_HIDDEN_WARNING = 14
    END_TAG = 15
    EVENT = 16


# One classified fragment of output. Spans are produced lazily and consumed once.
Span = namedtuple("Span", ["text", "role"])

# Fixed output text
SPACE = " "
MEMBER_SEPARATOR = "."
LIST_SEPARATOR = ", "
GLOBAL_SEPARATOR = "::"
GENERIC_OPEN = "<"
GENERIC_CLOSE = ">"
PARAMETERS_OPEN = "("
PARAMETERS_CLOSE = ")"
INDEXER_OPEN = "["
INDEXER_CLOSE = "]"
ARRAY = "[]"
POINTER = "*"
NULLABLE = "?"
QUOTE = '"'
ROOT_DIRECTORY = "~"
BODY_OPEN = "{"
BODY_CLOSE = "}"
LAMBDA = "=>"
HIDDEN_BODY = "..."
NULL = "null"
REF = "ref"
OUT = "out"
PARAMS = "params"
ANONYMOUS = "anonymous"
STATIC = "static"
ASYNC = "async"
ENUMERATOR = "enumerator"
GETTER = "get"
SETTER = "set"
ADDER = "add"
REMOVER = "remove"
RAISER = "raise"
GLOBAL = "global"
AT_PREFIX = " at "
IN = "in"
LINE_PREFIX = "LN #"
COLUMN_PREFIX = "COL #"
OFFSET_PREFIX = "IL"
FILE_PREFIX = "FILE: "
MODULE_PREFIX = 'MODULE: "'
LOCATION_PREFIX = 'LOCATION: "'
HIDDEN_LINES_WARNING = "Some lines hidden for readability."
PARAGRAPH_OPEN = "<p>"
PARAGRAPH_CLOSE = "</p>"