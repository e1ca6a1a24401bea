"""
Text Normalizer — raw comment → token sequence.
================================================
Pluggable collaborator: the pipeline only needs an object with
`normalize(text) -> list[str]`. RegexNormalizer is the default:

  Input text → NFC → lowercase → strip URLs → strip punctuation/digits
             → whitespace tokenize → drop stopwords / short tokens → stem
"""
import re
import unicodedata
from typing import Callable, Iterable, Optional, Protocol

from sklearn.feature_extraction.text import ENGLISH_STOP_WORDS

from comment_classifier.training.config import MIN_TOKEN_LENGTH


_URL_RE = re.compile(r"(https?://\S+|www\.\S+)", re.IGNORECASE)
# Wikipedia talk-page markup shows up a lot in comment dumps
_MARKUP_RE = re.compile(r"(NEWLINE_TOKEN|TAB_TOKEN|==+|`+)")
_NON_WORD_RE = re.compile(r"[^\w\s]|\d|_")
_SPACE_RE = re.compile(r"\s+")


class TextNormalizer(Protocol):
    def normalize(self, text: str) -> list[str]:
        ...


class RegexNormalizer:
    """
    Regex-based normalizer for English comments.

    Args:
        stopwords: tokens to drop (default: scikit-learn English list)
        min_token_length: shorter tokens are dropped
        stemmer: optional callable applied to each surviving token
        strip_urls: remove http(s):// and www. links before tokenizing
    """

    def __init__(
        self,
        stopwords: Optional[Iterable[str]] = None,
        min_token_length: int = MIN_TOKEN_LENGTH,
        stemmer: Optional[Callable[[str], str]] = None,
        strip_urls: bool = True,
    ):
        self.stopwords = frozenset(ENGLISH_STOP_WORDS if stopwords is None else stopwords)
        self.min_token_length = min_token_length
        self.stemmer = stemmer
        self.strip_urls = strip_urls

    def preprocess(self, text: str) -> str:
        """Clean the raw string, keep word characters only."""
        text = unicodedata.normalize("NFC", text or "")
        text = _MARKUP_RE.sub(" ", text)
        text = text.lower()
        if self.strip_urls:
            text = _URL_RE.sub(" ", text)
        text = _NON_WORD_RE.sub(" ", text)
        return _SPACE_RE.sub(" ", text).strip()

    def normalize(self, text: str) -> list[str]:
        tokens = []
        for token in self.preprocess(text).split(" "):
            if len(token) < self.min_token_length or token in self.stopwords:
                continue
            if self.stemmer is not None:
                token = self.stemmer(token)
                if not token:
                    continue
            tokens.append(token)
        return tokens

    def __call__(self, text: str) -> list[str]:
        return self.normalize(text)


def normalize_corpus(texts: Iterable[str], normalizer: Optional[TextNormalizer] = None) -> list[list[str]]:
    """Tokenize every text, one token list per input (order preserved)."""
    normalizer = normalizer or RegexNormalizer()
    return [list(normalizer.normalize(text)) for text in texts]
