"""Tests for normalization and the mora-counting predicate."""

import pytest

from haikubot.matcher import (
    HAIKU,
    TANKA,
    Morpheme,
    PatternMatcher,
    count_morae,
    match_rule,
    normalize,
)
from tests.fakes import FURUIKE, FakeToken


def noun(surface: str, reading: str) -> Morpheme:
    return Morpheme(surface=surface, pos=("名詞", "一般"), reading=reading)


def particle(surface: str, reading: str) -> Morpheme:
    return Morpheme(surface=surface, pos=("助詞", "格助詞"), reading=reading)


class TestNormalize:
    """Tests for normalize()."""

    def test_strips_links_and_tags(self):
        text = "古池や https://example.com/x 蛙飛び込む #haiku 水の音"

        assert normalize(text) == "古池や 蛙飛び込む 水の音"

    def test_collapses_whitespace(self):
        assert normalize("  古池や\n\t蛙  ") == "古池や 蛙"

    def test_keeps_inline_hash(self):
        """Only whole tokens starting with # are tags."""
        assert normalize("C#で書く") == "C#で書く"

    def test_empty(self):
        assert normalize("#tag https://a.b") == ""


class TestCountMorae:
    """Tests for count_morae()."""

    @pytest.mark.parametrize(
        ("reading", "expected"),
        [
            ("フルイケ", 4),
            ("キャ", 1),
            ("ガッコウ", 4),
            ("ラーメン", 4),
            ("ふるいけ", 4),
        ],
    )
    def test_counts(self, reading, expected):
        assert count_morae(reading) == expected

    def test_non_kana_is_unreadable(self):
        assert count_morae("hello") == -1


class TestMatchRule:
    """Tests for match_rule()."""

    def test_exact_phrases(self):
        morphemes = [noun("あ", "アアアアア"), noun("い", "イイイイイイイ"), noun("う", "ウウウウウ")]

        assert match_rule(morphemes, (5, 7, 5))

    def test_word_straddling_boundary_fails(self):
        morphemes = [noun("あ", "アアアア"), noun("い", "イイ"), noun("う", "ウウウウウウウウウウ")]

        assert not match_rule(morphemes, (5, 7, 5))

    def test_phrase_cannot_start_with_particle(self):
        morphemes = [noun("あ", "アアアア"), particle("や", "ヤ"), particle("を", "ヲ"), noun("い", "イイイイイイ"), noun("う", "ウウウウウ")]

        assert not match_rule(morphemes, (5, 7, 5))

    def test_symbols_are_ignored(self):
        symbol = Morpheme(surface="、", pos=("記号", "読点"), reading="、")
        morphemes = [noun("あ", "アアアアア"), symbol, noun("い", "イイイイイイイ"), noun("う", "ウウウウウ"), symbol]

        assert match_rule(morphemes, (5, 7, 5))

    def test_extra_words_fail(self):
        morphemes = [noun("あ", "アアアアア"), noun("い", "イイイイイイイ"), noun("う", "ウウウウウ"), noun("え", "エ")]

        assert not match_rule(morphemes, (5, 7, 5))

    def test_too_short_fails(self):
        assert not match_rule([noun("あ", "アアアアア")], (5, 7, 5))


class TestPatternMatcher:
    """Tests for PatternMatcher with a fixed tokenizer."""

    def test_furuike_is_haiku(self, matcher):
        assert matcher.matches(FURUIKE, HAIKU)

    def test_furuike_is_not_tanka(self, matcher):
        assert not matcher.matches(FURUIKE, TANKA)

    def test_latin_text_never_matches(self, matcher):
        assert not matcher.matches("hello world", HAIKU)
        assert not matcher.matches("hello world", TANKA)

    def test_blank_text_never_matches(self, matcher):
        assert not matcher.matches("   ", HAIKU)

    def test_unknown_reading_falls_back_to_surface(self):
        class Tokenizer:
            def tokenize(self, text):
                return [FakeToken("ふるいけや", "名詞,一般,*,*", "*")]

        morphemes = PatternMatcher(tokenizer=Tokenizer()).morphemes("ふるいけや")

        assert morphemes[0].reading == "ふるいけや"
        assert morphemes[0].pos == ("名詞", "一般", "*", "*")
