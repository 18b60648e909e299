"""
Bulletin classification and locality extraction for QuietWatch.

Bulletins are free-form Hebrew text published by the Home Front Command
channel. A typical alert looks like::

    🚨 ירי רקטות וטילים (28/2/2026) 13:10

    אזור מרכז הנגב
    להב, להבים (45 שניות)
    באר שבע - דרום, באר שבע - מזרח, עומר (דקה)

    היכנסו למרחב המוגן.

Locality lines carry a timing annotation in parentheses. Official
stand-down updates list localities without one.
"""

import re
from typing import List, Optional

from ..core.models import BulletinKind
from .localities import normalize_locality

# "Alerts are expected shortly in your area"
UPCOMING_WARNING_PHRASE = "בדקות הקרובות צפויות להתקבל התרעות באזורך"
# "Update"
UPDATE_TOKEN = "עדכון"
# "You may exit the protected space"
STAND_DOWN_PHRASE = "ניתן לצאת מהמרחב המוגן"
STAND_DOWN_PHRASE_VARIANTS = (
    "ניתן לצאת מהמרחב המוגן אך יש להישאר בקרבתו",
    "באזורים הבאים ניתן לצאת מהמרחב המוגן",
    STAND_DOWN_PHRASE,
)
# "Enter the protected space"
ENTER_SHELTER_PHRASE = "היכנסו למרחב המוגן"
# "Rocket and missile fire"
ROCKET_FIRE_BANNER = "ירי רקטות וטילים"
ALERT_EMOJI = "🚨"
REGION_PREFIX = "אזור "

_ROCKET_BANNER_LINE = re.compile(r"^(?:%s\s*)?%s" % (ALERT_EMOJI, ROCKET_FIRE_BANNER))
# "Flash" and "Update" banners
_EMOJI_BANNER_LINE = re.compile(r"^%s\s*(?:מבזק|%s)" % (ALERT_EMOJI, UPDATE_TOKEN))
_BANNER_NAMES = frozenset({ROCKET_FIRE_BANNER, f"{ALERT_EMOJI} {ROCKET_FIRE_BANNER}"})


def _lines(text: str) -> List[str]:
    return [line.strip() for line in text.split("\n") if line.strip()]


def is_upcoming_warning(text: str) -> bool:
    """Advisory bulletins that announce alerts but carry no locality action."""
    return UPCOMING_WARNING_PHRASE in text


def classify_bulletin(text: str) -> BulletinKind:
    """
    Classify raw bulletin text.

    The advisory phrase wins over every other signal. A stand-down needs the
    update token on the first non-empty line and the stand-down phrase
    anywhere in the body.
    """
    if is_upcoming_warning(text):
        return BulletinKind.UPCOMING_WARNING

    lines = _lines(text)
    if lines and UPDATE_TOKEN in lines[0] and STAND_DOWN_PHRASE in text:
        return BulletinKind.STAND_DOWN

    return BulletinKind.ALERT


def _is_header_or_instruction(line: str) -> bool:
    if any(phrase in line for phrase in STAND_DOWN_PHRASE_VARIANTS):
        return True
    if line.startswith(REGION_PREFIX) and "(" not in line:
        return True
    if ENTER_SHELTER_PHRASE in line:
        return True
    if _ROCKET_BANNER_LINE.match(line) or _EMOJI_BANNER_LINE.match(line):
        return True
    return False


def _locality_list(line: str, kind: BulletinKind) -> Optional[str]:
    if kind is BulletinKind.STAND_DOWN:
        return line

    bracket = line.find("(")
    if bracket == -1:
        return None
    return line[:bracket].strip()


def extract_localities(text: str, kind: Optional[BulletinKind] = None) -> List[str]:
    """
    Extract the deduplicated localities a bulletin refers to.

    Args:
        text: Raw bulletin text
        kind: Pre-computed classification (classified here when omitted)

    Returns:
        Normalized locality names in first-seen order. Upcoming warnings and
        unrecognized text yield an empty list.
    """
    if kind is None:
        kind = classify_bulletin(text)
    if kind is BulletinKind.UPCOMING_WARNING:
        return []

    seen = {}
    for line in _lines(text):
        if _is_header_or_instruction(line):
            continue

        names = _locality_list(line, kind)
        if not names:
            continue

        for part in names.split(","):
            name = normalize_locality(part)
            if not name or name in _BANNER_NAMES:
                continue
            seen.setdefault(name, None)

    return list(seen)
