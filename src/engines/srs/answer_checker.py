"""
Answer checking for meaning and reading sub-questions.

Meanings are matched leniently in English. Readings are compared in
hiragana: learner romaji is transliterated first, and canonical readings
written in katakana are folded to hiragana.
"""

import re
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping

KANJI_PATTERN = re.compile(r"[\u4e00-\u9faf\u3400-\u4dbf]")
READING_NOISE = re.compile(r"[.\s\-～〜ー]")

KATAKANA_START = 0x30A1
KATAKANA_END = 0x30F6
KATAKANA_TO_HIRAGANA_OFFSET = 0x60

# Doubled consonants (e.g. "kk") become a small tsu
SOKUON_CONSONANTS = frozenset("kstpgdbzcjfhmr")
MIN_PARTIAL_MATCH_LENGTH = 3

ROMAJI_TO_HIRAGANA: Mapping[str, str] = MappingProxyType({
    "a": "あ", "i": "い", "u": "う", "e": "え", "o": "お",
    "ka": "か", "ki": "き", "ku": "く", "ke": "け", "ko": "こ",
    "sa": "さ", "si": "し", "shi": "し", "su": "す", "se": "せ", "so": "そ",
    "ta": "た", "ti": "ち", "chi": "ち", "tu": "つ", "tsu": "つ", "te": "て", "to": "と",
    "na": "な", "ni": "に", "nu": "ぬ", "ne": "ね", "no": "の",
    "ha": "は", "hi": "ひ", "hu": "ふ", "fu": "ふ", "he": "へ", "ho": "ほ",
    "ma": "ま", "mi": "み", "mu": "む", "me": "め", "mo": "も",
    "ya": "や", "yu": "ゆ", "yo": "よ",
    "ra": "ら", "ri": "り", "ru": "る", "re": "れ", "ro": "ろ",
    "wa": "わ", "wo": "を", "nn": "ん",
    "ga": "が", "gi": "ぎ", "gu": "ぐ", "ge": "げ", "go": "ご",
    "za": "ざ", "zi": "じ", "ji": "じ", "zu": "ず", "ze": "ぜ", "zo": "ぞ",
    "da": "だ", "du": "づ", "de": "で", "do": "ど",
    "ba": "ば", "bi": "び", "bu": "ぶ", "be": "べ", "bo": "ぼ",
    "pa": "ぱ", "pi": "ぴ", "pu": "ぷ", "pe": "ぺ", "po": "ぽ",
    "kya": "きゃ", "kyu": "きゅ", "kyo": "きょ",
    "sha": "しゃ", "shu": "しゅ", "sho": "しょ",
    "cha": "ちゃ", "chu": "ちゅ", "cho": "ちょ",
    "nya": "にゃ", "nyu": "にゅ", "nyo": "にょ",
    "hya": "ひゃ", "hyu": "ひゅ", "hyo": "ひょ",
    "mya": "みゃ", "myu": "みゅ", "myo": "みょ",
    "rya": "りゃ", "ryu": "りゅ", "ryo": "りょ",
    "gya": "ぎゃ", "gyu": "ぎゅ", "gyo": "ぎょ",
    "ja": "じゃ", "ju": "じゅ", "jo": "じょ",
    "bya": "びゃ", "byu": "びゅ", "byo": "びょ",
    "pya": "ぴゃ", "pyu": "ぴゅ", "pyo": "ぴょ",
    "-": "ー",
})

_MAX_ROMAJI_CHUNK = max(len(key) for key in ROMAJI_TO_HIRAGANA)


class QuestionType(str, Enum):
    """The two graded sub-questions an item can generate."""
    MEANING = "meaning"
    READING = "reading"


def contains_kanji(text: str) -> bool:
    return bool(KANJI_PATTERN.search(text))


def katakana_to_hiragana(text: str) -> str:
    return "".join(
        chr(ord(ch) - KATAKANA_TO_HIRAGANA_OFFSET)
        if KATAKANA_START <= ord(ch) <= KATAKANA_END
        else ch
        for ch in text
    )


def romaji_to_hiragana(text: str) -> str:
    """
    Transliterate romaji into hiragana, passing through anything unknown.

    Longest match wins. A doubled consonant yields っ, "nn" yields ん, and a
    lone "n" before a consonant (other than y) or at the end yields ん.
    """
    lower = text.lower()
    out = []
    i = 0
    while i < len(lower):
        ch = lower[i]
        nxt = lower[i + 1] if i + 1 < len(lower) else ""

        if nxt == ch and ch in SOKUON_CONSONANTS:
            out.append("っ")
            i += 1
            continue

        for size in range(min(_MAX_ROMAJI_CHUNK, len(lower) - i), 0, -1):
            kana = ROMAJI_TO_HIRAGANA.get(lower[i:i + size])
            if kana:
                out.append(kana)
                i += size
                break
        else:
            if ch == "n" and (not nxt or nxt not in "aiueoy"):
                out.append("ん")
                i += 1
            else:
                out.append(ch)
                i += 1
    return "".join(out)


def clean_reading(text: str) -> str:
    return READING_NOISE.sub("", text).lower()


def check_meaning(answer: str, meanings: Iterable[str]) -> bool:
    """
    Case-insensitive, trimmed meaning match.

    Accepts an exact match, an answer found anywhere inside a registered
    meaning (so "moun" and "mo" both pass for "mountain"), or an answer
    containing a registered meaning of 3+ characters.
    """
    given = answer.strip().lower()
    if not given:
        return False
    for meaning in meanings:
        expected = meaning.strip().lower()
        if not expected:
            continue
        if given == expected:
            return True
        if given in expected:
            return True
        if expected in given and len(expected) >= MIN_PARTIAL_MATCH_LENGTH:
            return True
    return False


def check_reading(answer: str, readings: Iterable[str]) -> bool:
    """
    Reading match after normalization.

    The learner's answer is tried as typed, folded from katakana and
    transliterated from romaji; each canonical reading is tried both as stored and folded from
    katakana to hiragana.
    """
    if not answer.strip():
        return False
    typed = clean_reading(answer)
    candidates = {
        typed,
        katakana_to_hiragana(typed),
        clean_reading(romaji_to_hiragana(answer.strip())),
    }
    candidates.discard("")
    for reading in readings:
        expected = clean_reading(reading)
        if not expected:
            continue
        if expected in candidates or katakana_to_hiragana(expected) in candidates:
            return True
    return False


def check_answer(
    question_type: QuestionType,
    answer: str,
    meanings: Iterable[str],
    readings: Iterable[str],
) -> bool:
    if question_type == QuestionType.MEANING:
        return check_meaning(answer, meanings)
    return check_reading(answer, readings)
