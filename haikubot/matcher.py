"""Text normalization and the structural match predicate.

The pipeline only needs ``matches(text, pattern) -> bool``. The default
implementation tokenizes Japanese text with janome, counts morae from each
token's katakana reading and checks that the text splits into phrases of the
pattern's lengths on word boundaries.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Protocol

logger = logging.getLogger(__name__)

_LINK = re.compile(r"^\w+://\S+$")
_TAG = re.compile(r"^#\S+$")

# Small kana merge with the preceding mora
_SMALL_KANA = set("ァィゥェォャュョヮぁぃぅぇぉゃゅょゎ")

# Parts of speech that may open a phrase
_WORD_CLASSES = {
    "名詞",
    "動詞",
    "形容詞",
    "形容動詞",
    "副詞",
    "連体詞",
    "接続詞",
    "感動詞",
    "接頭詞",
    "フィラー",
}
_DEPENDENT_SUBCLASSES = {"非自立", "接尾"}


@dataclass(frozen=True)
class Pattern:
    """A target structure: phrase lengths in morae and the reply suffix."""

    name: str
    rule: tuple[int, ...]
    tag: str


HAIKU = Pattern(name="haiku", rule=(5, 7, 5), tag="#n575 #haiku")
TANKA = Pattern(name="tanka", rule=(5, 7, 5, 7, 7), tag="#n57577 #tanka")
DEFAULT_PATTERNS: tuple[Pattern, ...] = (HAIKU, TANKA)


class Matcher(Protocol):
    def matches(self, text: str, pattern: Pattern) -> bool: ...


def normalize(text: str) -> str:
    """Drop URL and hashtag tokens and collapse whitespace.

    Example:
        >>> normalize("古池や https://example.com 蛙飛び込む #haiku 水の音")
        '古池や 蛙飛び込む 水の音'
    """
    words = [w for w in text.split() if not (_LINK.match(w) or _TAG.match(w))]
    return " ".join(words)


@dataclass(frozen=True)
class Morpheme:
    surface: str
    pos: tuple[str, ...]
    reading: str

    @property
    def is_symbol(self) -> bool:
        return self.pos[0] in ("記号", "空白") if self.pos else False

    @property
    def is_word(self) -> bool:
        if not self.pos or self.pos[0] not in _WORD_CLASSES:
            return False
        return not (len(self.pos) > 1 and self.pos[1] in _DEPENDENT_SUBCLASSES)


def count_morae(reading: str) -> int:
    """Count morae in a kana reading, or -1 if it contains anything else."""
    count = 0
    for ch in reading:
        if ch in _SMALL_KANA:
            continue
        if "ぁ" <= ch <= "ゖ" or "ァ" <= ch <= "ヺ" or ch == "ー":
            count += 1
        else:
            return -1
    return count


def match_rule(morphemes: Iterable[Morpheme], rule: tuple[int, ...]) -> bool:
    """Check that the morphemes fill every phrase of ``rule`` exactly.

    Each phrase must start with an independent word, and no word may
    straddle a phrase boundary. Symbols are ignored.
    """
    remaining = list(rule)
    phrase = 0
    for m in morphemes:
        if m.is_symbol:
            continue
        if phrase == len(rule):
            logger.debug(f"extra word after final phrase: {m.surface}")
            return False
        if remaining[phrase] == rule[phrase] and not m.is_word:
            logger.debug(f"phrase {phrase} cannot start with {m.surface} ({','.join(m.pos)})")
            return False
        morae = count_morae(m.reading)
        if morae < 0:
            logger.debug(f"unreadable token: {m.surface} ({m.reading})")
            return False
        remaining[phrase] -= morae
        logger.debug(f"{m.surface} {m.reading} {morae} -> phrase {phrase} remaining {remaining[phrase]}")
        if remaining[phrase] == 0:
            phrase += 1
        elif remaining[phrase] < 0:
            return False
    return phrase == len(rule)


class PatternMatcher:
    """Mora-counting predicate backed by the janome tokenizer.

    Args:
        tokenizer: Object with ``tokenize(text)`` yielding janome-style tokens;
            a janome ``Tokenizer`` is created lazily when omitted
        user_dictionary: Optional MeCab IPADIC-format CSV user dictionary
    """

    def __init__(self, tokenizer: Any = None, *, user_dictionary: Path | None = None):
        self._tokenizer = tokenizer
        self.user_dictionary = user_dictionary

    @property
    def tokenizer(self) -> Any:
        if self._tokenizer is None:
            from janome.tokenizer import Tokenizer

            if self.user_dictionary:
                self._tokenizer = Tokenizer(str(self.user_dictionary), udic_enc="utf8")
            else:
                self._tokenizer = Tokenizer()
        return self._tokenizer

    def morphemes(self, text: str) -> list[Morpheme]:
        result = []
        for token in self.tokenizer.tokenize(text):
            reading = token.reading
            if not reading or reading == "*":
                reading = token.surface
            result.append(
                Morpheme(
                    surface=token.surface,
                    pos=tuple(token.part_of_speech.split(",")),
                    reading=reading,
                )
            )
        return result

    def matches(self, text: str, pattern: Pattern) -> bool:
        if not text.strip():
            return False
        matched = match_rule(self.morphemes(text), pattern.rule)
        logger.debug(f"{pattern.name} {'matched' if matched else 'rejected'}: {text}")
        return matched
