"""Natural-language classification and query handling."""

from polenta_mcp.intelligence.engine import QUERY_SUGGESTIONS, QueryIntelligenceEngine
from polenta_mcp.intelligence.parser import OperationType, QueryParser
from polenta_mcp.intelligence.tokenizer import Tokenizer, ToktokWordTokenizer

__all__ = [
    "QUERY_SUGGESTIONS",
    "OperationType",
    "QueryIntelligenceEngine",
    "QueryParser",
    "Tokenizer",
    "ToktokWordTokenizer",
]
