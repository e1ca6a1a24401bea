"""Tests for the regex text normalizer."""
from comment_classifier.core.normalizer import RegexNormalizer, normalize_corpus


def test_lowercases_and_strips_punctuation_and_digits():
    tokens = RegexNormalizer(stopwords=[]).normalize("Hello, WORLD!! 2024 is_here")
    assert tokens == ["hello", "world", "is", "here"]


def test_drops_stopwords_and_short_tokens():
    tokens = RegexNormalizer().normalize("This is a very silly edit x")
    assert "this" not in tokens
    assert "x" not in tokens
    assert "silly" in tokens and "edit" in tokens


def test_strips_urls_and_markup():
    text = "See http://example.com/page NEWLINE_TOKEN== Section == `code`"
    tokens = RegexNormalizer(stopwords=[]).normalize(text)
    assert tokens == ["see", "section", "code"]


def test_stemmer_is_applied():
    normalizer = RegexNormalizer(stopwords=[], stemmer=lambda t: t.rstrip("s"))
    assert normalizer.normalize("edits pages") == ["edit", "page"]


def test_empty_and_none_text():
    normalizer = RegexNormalizer()
    assert normalizer.normalize("") == []
    assert normalizer.normalize(None) == []


def test_normalize_corpus_keeps_order():
    corpus = normalize_corpus(["great article", "", "awful edit"])
    assert corpus == [["great", "article"], [], ["awful", "edit"]]
