"""
False-positive filtering for risky phrases reported by a model.

Models readily flag everyday words ("team", "kid", "phone"). A phrase is
dropped when every word in it is harmless, when it is too short to mean
anything, or when it names a child or a device without any word that makes
the mention problematic. Matching is per whole word, so "shit" is not
mistaken for the harmless "hit".
"""

import logging
import re
from typing import Iterable, List

logger = logging.getLogger(__name__)

FALSE_POSITIVE_WORDS = frozenset([
    # Common and competition words
    'you', 'worried', 'rival', 'team', 'player', 'goal', 'score', 'match', 'game', 'play',
    'win', 'lose', 'good', 'bad', 'big', 'small', 'new', 'old', 'first', 'last', 'best', 'worst',

    # Money
    'money', 'dollar', 'price', 'cost', 'value', 'worth', 'expensive', 'cheap', 'million', 'billion',

    # Time and measurement
    'year', 'month', 'week', 'day', 'time', 'people', 'person', 'thing', 'way', 'work',

    # Actions
    'make', 'take', 'get', 'go', 'come', 'see', 'know', 'think', 'feel', 'want', 'need', 'like',
    'look', 'say', 'tell', 'ask', 'give', 'find', 'use', 'try', 'call', 'help', 'start', 'stop',
    'keep', 'put', 'bring', 'turn', 'move', 'change', 'show', 'hear', 'run', 'walk',
    'sit', 'stand', 'wait', 'watch', 'read', 'write', 'speak', 'talk', 'listen', 'learn', 'teach',

    # Sports, activities and feelings
    'buy', 'sell', 'pay', 'earn', 'spend', 'save', 'beat', 'hit', 'catch', 'throw',
    'kick', 'jump', 'swim', 'dance', 'sing', 'laugh', 'cry', 'smile', 'frown', 'love', 'hate',
    'dislike', 'happy', 'sad', 'angry', 'excited', 'bored', 'tired', 'hungry', 'thirsty',

    # Descriptive
    'hot', 'cold', 'warm', 'cool', 'fast', 'slow', 'quick', 'easy', 'hard', 'simple', 'complex',
    'right', 'wrong', 'true', 'false', 'yes', 'no', 'maybe', 'sure', 'okay', 'fine', 'great', 'awesome',

    # Family and age
    'kid', 'kids', 'child', 'children', 'boy', 'girl', 'son', 'daughter',
    'family', 'parent', 'mom', 'dad', 'mother', 'father', 'sister', 'brother', 'baby', 'toddler',
    'teen', 'teenager', 'youth', 'young', 'elderly', 'senior', 'adult', 'grown', 'grownup',

    # Devices and communication
    'phone', 'device', 'mobile', 'cell', 'smartphone', 'iphone', 'android', 'tablet', 'computer',
    'laptop', 'desktop', 'screen', 'display', 'monitor', 'keyboard', 'mouse', 'touch', 'tap',
    'swipe', 'click', 'type', 'text', 'message', 'ring', 'dial', 'number', 'contact', 'address',
    'email', 'mail',

    # Places
    'home', 'house', 'room', 'bedroom', 'kitchen', 'bathroom', 'living', 'dining', 'office',
    'school', 'class', 'teacher', 'student', 'classroom', 'homework', 'study', 'education',

    # Relationships
    'friend', 'buddy', 'pal', 'mate', 'colleague', 'neighbor', 'cousin', 'uncle', 'aunt', 'grandma',
    'grandpa', 'grandmother', 'grandfather', 'nephew', 'niece', 'relative', 'relation',
])

FAMILY_CHILD_TERMS = frozenset([
    'kid', 'kids', 'child', 'children', 'boy', 'girl', 'son', 'daughter', 'baby', 'toddler', 'teen', 'teenager',
])
# Matched as word prefixes: "kidnap" also covers "kidnapped"
FAMILY_CHILD_PROBLEMATIC_CONTEXTS = (
    'abuse', 'exploitation', 'kidnap', 'traffic', 'porn', 'sexual', 'inappropriate', 'harm', 'danger', 'risk',
)

TECHNOLOGY_TERMS = frozenset([
    'phone', 'device', 'mobile', 'cell', 'smartphone', 'tablet', 'computer', 'laptop',
])
TECHNOLOGY_PROBLEMATIC_CONTEXTS = (
    'scam', 'hack', 'virus', 'malware', 'spy', 'track', 'steal', 'illegal', 'fraud', 'phishing',
)

MIN_PHRASE_LENGTH = 3

_WORD_RE = re.compile(r"[^\W_]+(?:'[^\W_]+)?")


def _words(phrase: str) -> List[str]:
    return _WORD_RE.findall(phrase.lower())


def _has_context(words: List[str], contexts) -> bool:
    return any(word.startswith(context) for word in words for context in contexts)


def is_false_positive(phrase: str) -> bool:
    """True when every word of the phrase is a harmless everyday word."""
    words = _words(phrase or "")
    return bool(words) and all(word in FALSE_POSITIVE_WORDS for word in words)


def should_flag_phrase(phrase) -> bool:
    if not isinstance(phrase, str):
        return False
    phrase = phrase.strip()
    if len(phrase) < MIN_PHRASE_LENGTH:
        return False

    words = _words(phrase)
    if not words:
        return False

    if is_false_positive(phrase):
        logger.debug(f"Filtering out false positive: {phrase!r}")
        return False

    if any(word in FAMILY_CHILD_TERMS for word in words) and not _has_context(words, FAMILY_CHILD_PROBLEMATIC_CONTEXTS):
        logger.debug(f"Filtering out family/child term without problematic context: {phrase!r}")
        return False

    if any(word in TECHNOLOGY_TERMS for word in words) and not _has_context(words, TECHNOLOGY_PROBLEMATIC_CONTEXTS):
        logger.debug(f"Filtering out technology term without problematic context: {phrase!r}")
        return False

    return True


def filter_false_positives(phrases: Iterable[str]) -> List[str]:
    """Keep flaggable phrases, stripped and de-duplicated case-insensitively, in order."""
    kept = []
    seen = set()
    for phrase in phrases or []:
        if not should_flag_phrase(phrase):
            continue
        phrase = phrase.strip()
        if phrase.lower() in seen:
            continue
        seen.add(phrase.lower())
        kept.append(phrase)
    return kept
