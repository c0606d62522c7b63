"""Word segmentation used by the query parser."""

from typing import Protocol, runtime_checkable

from nltk.tokenize.toktok import ToktokTokenizer


@runtime_checkable
class Tokenizer(Protocol):
    """Splits text into word tokens."""

    def tokenize(self, text: str) -> list[str]: ...


class ToktokWordTokenizer:
    """Multilingual tokenizer backed by NLTK's Toktok.

    Toktok is rule-based, so it needs no downloaded model data and handles
    accented Spanish words and trailing punctuation alike.
    """

    def __init__(self):
        self._tokenizer = ToktokTokenizer()

    def tokenize(self, text: str) -> list[str]:
        if not text or not text.strip():
            return []
        return self._tokenizer.tokenize(text)
