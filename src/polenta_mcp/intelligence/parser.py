"""Classify free-text requests and pull out table, entity and keyword names."""

import re
import unicodedata
from enum import Enum

from polenta_mcp.errors import InvalidParamsError
from polenta_mcp.intelligence.tokenizer import Tokenizer, ToktokWordTokenizer


class OperationType(str, Enum):
    SHOW_TABLES = "SHOW_TABLES"
    ACCESSIBLE_TABLES = "ACCESSIBLE_TABLES"
    DESCRIBE_TABLE = "DESCRIBE_TABLE"
    SAMPLE_DATA = "SAMPLE_DATA"
    SEARCH_TABLES = "SEARCH_TABLES"
    LIST_ENTITY = "LIST_ENTITY"
    DIRECT_SQL = "DIRECT_SQL"
    UNKNOWN = "UNKNOWN"


def _rule(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE | re.DOTALL)


# Evaluated top to bottom; the first match wins. Accessibility phrasing must
# be checked before the generic "show/list/what ... tables" rule.
RULES: tuple[tuple[re.Pattern, OperationType], ...] = (
    (_rule(r"\baccessible\b.*\btables\b"), OperationType.ACCESSIBLE_TABLES),
    (_rule(r"\btables\b.*\bcan\b.*\baccess\b"), OperationType.ACCESSIBLE_TABLES),
    (_rule(r"\bdescribe\s+table\s+\w+"), OperationType.DESCRIBE_TABLE),
    (_rule(r"\bcolumns\b.*\bin\b"), OperationType.DESCRIBE_TABLE),
    (_rule(r"\bstructure\b.*\bof\b"), OperationType.DESCRIBE_TABLE),
    (_rule(r"\bsample\s+data\s+from\s+\w+"), OperationType.SAMPLE_DATA),
    (_rule(r"\bshow\b.*\bdata\b.*\bfrom\b"), OperationType.SAMPLE_DATA),
    (_rule(r"\bpreview\b"), OperationType.SAMPLE_DATA),
    (_rule(r"\bfind\s+tables\s+containing\s+\w+"), OperationType.SEARCH_TABLES),
    (_rule(r"\b(show|list|what)\b.*\btables\b"), OperationType.SHOW_TABLES),
    (
        _rule(r"\blist\s+of\s+\w+|\blista\s+de\s+\w+|\b(todas|lista)\s+las\s+\w+"),
        OperationType.LIST_ENTITY,
    ),
)

_SEARCH_KEYWORDS = _rule(r"\b(find|search|buscar)\b")
_SQL_PREFIX = _rule(r"^\s*(select|show|describe|with|explain)\b")

_TABLE_MARKERS = ("from", "table", "of")
_TABLE_NAME_JUNK = re.compile(r"[^A-Za-z0-9._]")
_TOKEN_JUNK = re.compile(r"[^\w.]")

_SEARCH_ANCHORS = frozenset({"find", "search", "buscar", "for", "containing"})
_SEARCH_FILLERS = frozenset({"tables", "table", "for", "containing", "with", "the", "tablas", "con"})

_ENTITY_ANCHORS = frozenset({"list", "lista", "todas", "todos", "all"})
_ENTITY_CONNECTORS = frozenset({"of", "de", "las", "los", "the", "all", "todas", "todos"})

_SCHEMA_ANCHORS = frozenset({"schema", "esquema"})


def fold_accents(text: str) -> str:
    """Lower-case and drop diacritics ("Países" -> "paises")."""
    decomposed = unicodedata.normalize("NFKD", text.lower())
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def singularize(word: str) -> str:
    if len(word) > 3 and word.endswith("es"):
        return word[:-2]
    if len(word) > 1 and word.endswith("s"):
        return word[:-1]
    return word


def split_qualified_name(name: str) -> tuple[str | None, str]:
    """Split ``schema.table`` into its parts.

    Queries run against the configured catalog; catalog-qualified names
    are refused.

    Returns:
        (schema, table); schema is None for an unqualified name

    Raises:
        InvalidParamsError: For names with more than two parts
    """
    parts = [part for part in name.split(".") if part]
    if not parts:
        return None, ""
    if len(parts) > 2:
        raise InvalidParamsError(
            f"Table name must be table or schema.table, got: {name}",
            details={"table_name": name},
        )
    if len(parts) == 1:
        return None, parts[0]
    return parts[0], parts[1]


class QueryParser:
    """Rule-based classifier and parameter extractor for user requests."""

    def __init__(self, tokenizer: Tokenizer | None = None):
        self._tokenizer = tokenizer or ToktokWordTokenizer()

    def classify(self, text: str) -> OperationType:
        if not text or not text.strip():
            return OperationType.UNKNOWN
        for pattern, operation in RULES:
            if pattern.search(text):
                return operation
        if _SEARCH_KEYWORDS.search(text):
            return OperationType.SEARCH_TABLES
        if _SQL_PREFIX.match(text):
            return OperationType.DIRECT_SQL
        return OperationType.UNKNOWN

    def _words(self, text: str) -> list[str]:
        """Tokenize and normalize: lower-case, punctuation stripped, empties dropped."""
        words = []
        for token in self._tokenizer.tokenize(text):
            cleaned = _TOKEN_JUNK.sub("", token.lower()).strip(".")
            if cleaned:
                words.append(cleaned)
        return words

    def extract_table_name(self, text: str) -> str | None:
        """Table reference after from/table/of, else the last word."""
        words = text.lower().split()
        if not words:
            return None
        for i, word in enumerate(words[:-1]):
            if word in _TABLE_MARKERS:
                return _TABLE_NAME_JUNK.sub("", words[i + 1]) or None
        last_word = _TABLE_NAME_JUNK.sub("", words[-1])
        return last_word or None

    def extract_entity(self, text: str) -> str | None:
        """Singular, accent-free noun after "list of", "lista de", "todas las", ..."""
        words = self._words(text)
        for i, word in enumerate(words):
            if word not in _ENTITY_ANCHORS:
                continue
            j = i + 1
            while j < len(words) and words[j] in _ENTITY_CONNECTORS:
                j += 1
            # only "lista" may be followed directly by the entity
            has_connector = j > i + 1
            if j < len(words) and (has_connector or word == "lista"):
                return singularize(fold_accents(words[j]))
        return None

    def extract_search_keyword(self, text: str) -> str | None:
        words = self._words(text)
        for i, word in enumerate(words):
            if word not in _SEARCH_ANCHORS:
                continue
            for candidate in words[i + 1 :]:
                if candidate not in _SEARCH_FILLERS and candidate not in _SEARCH_ANCHORS:
                    return candidate
        return None

    def extract_schema_name(self, text: str) -> str | None:
        """The word right after "schema" or "esquema"."""
        words = self._words(text)
        for i, word in enumerate(words[:-1]):
            if word in _SCHEMA_ANCHORS:
                return words[i + 1]
        return None
