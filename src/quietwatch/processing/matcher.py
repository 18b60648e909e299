"""
Watch-list matching for QuietWatch.
"""

from typing import Dict, Iterable, List, Sequence

from ..core.models import BulletinKind, MatchResult
from .localities import is_base_match, normalize_locality
from .parser import classify_bulletin, extract_localities


def match_localities(alerted: Sequence[str], monitored: Iterable[str]) -> Dict[str, List[str]]:
    """Map each monitored locality to the alerted localities that belong to it."""
    matches: Dict[str, List[str]] = {}
    for monitored_locality in monitored:
        found = [name for name in alerted if is_base_match(monitored_locality, name)]
        if found:
            matches[monitored_locality] = found
    return matches


def match_monitored(text: str, monitored: Iterable[str]) -> MatchResult:
    """
    Classify a bulletin and match its localities against the watch-list.

    Args:
        text: Raw bulletin text
        monitored: Watch-list entries (normalized here)

    Returns:
        MatchResult with the bulletin kind, every extracted locality and the
        monitored localities that matched at least one of them
    """
    kind = classify_bulletin(text)
    if kind is BulletinKind.UPCOMING_WARNING:
        return MatchResult(kind=kind)

    alerted = [normalize_locality(name) for name in extract_localities(text, kind)]
    watch_list = [normalize_locality(name) for name in monitored]

    return MatchResult(
        kind=kind,
        alerted_localities=alerted,
        matches=match_localities(alerted, watch_list),
    )
