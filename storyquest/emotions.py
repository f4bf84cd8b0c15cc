"""Keyword-based emotion tagging for narrative text.

Used only as a fallback when the text back end does not supply an explicit
emotion. Each keyword is a case-insensitive substring test and counts once,
however often it appears.
"""

from storyquest.models import Emotion

HAPPY_KEYWORDS: tuple[str, ...] = (
    "happy", "smile", "laugh", "joy", "excited", "pleased", "delight",
    "cheer", "bright", "content", "warm", "grin", "peaceful", "relief",
    "successful", "victory", "accomplish", "proud", "triumph", "satisf",
)

SAD_KEYWORDS: tuple[str, ...] = (
    "sad", "frown", "tear", "cry", "upset", "disappointed", "depressed",
    "worried", "anxious", "fear", "terrified", "scared", "angry", "mad",
    "frustrat", "pain", "hurt", "sorrow", "grief", "despair", "lose", "lost",
    "heavy", "dark", "gloom", "miserable", "unhappy", "lonely", "alone",
)


def _count_matches(text: str, keywords: tuple[str, ...]) -> int:
    return sum(1 for keyword in keywords if keyword in text)


def classify(text: str) -> Emotion:
    """Map free text to an emotion tag; ties and no matches give "default"."""
    lower = (text or "").lower()
    happy = _count_matches(lower, HAPPY_KEYWORDS)
    sad = _count_matches(lower, SAD_KEYWORDS)
    if happy > sad and happy > 0:
        return "happy"
    if sad > happy and sad > 0:
        return "sad"
    return "default"
