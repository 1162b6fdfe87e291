"""
Channel/programme correlation

Joins parsed programmes to their channel and caps how many programmes each
channel keeps. Unresolved programmes are kept with channel=None; callers
substitute the fallback channel name.
"""
from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from typing import NamedTuple, Optional, Protocol
import logging

from epg_guide.services.fetch_types import CorrelationStrategy, RawChannel, RawProgramme

logger = logging.getLogger(__name__)


class Correlation(NamedTuple):
    programme: RawProgramme
    channel: Optional[RawChannel]


class Correlator(Protocol):
    """Joins programmes to channels and enforces a per-channel cap"""

    def correlate(
        self,
        channels: Sequence[RawChannel],
        programmes: Iterable[RawProgramme],
        cap_per_channel: int | None,
    ) -> list[Correlation]:
        ...


def build_channel_index(channels: Iterable[RawChannel]) -> dict[str, RawChannel]:
    """Index channels by id; the first occurrence of an id wins."""
    index: dict[str, RawChannel] = {}
    for channel in channels:
        index.setdefault(channel.id, channel)
    return index


def names_match(channel_name: str, token: str) -> bool:
    """Case-insensitive bidirectional substring match; empty strings never match."""
    name = channel_name.strip().lower()
    other = token.strip().lower()
    if not name or not other:
        return False
    return name in other or other in name


class ExactIdCorrelator:
    """O(1) lookup of each programme's channel id"""

    def correlate(
        self,
        channels: Sequence[RawChannel],
        programmes: Iterable[RawProgramme],
        cap_per_channel: int | None,
    ) -> list[Correlation]:
        resolve = self._build_resolver(channels)
        return _apply_cap(
            (Correlation(programme, resolve(programme)) for programme in programmes),
            cap_per_channel,
        )

    def _build_resolver(self, channels: Sequence[RawChannel]) -> Callable[[RawProgramme], Optional[RawChannel]]:
        index = build_channel_index(channels)
        return lambda programme: index.get(programme.channel_id)


class FuzzyNameCorrelator(ExactIdCorrelator):
    """
    Exact id first, then bidirectional substring matching between channel
    names and the programme's channel token.

    Matching is O(channels x distinct tokens); use it on pre-filtered,
    small channel sets (e.g. a curated playlist).
    """

    def _build_resolver(self, channels: Sequence[RawChannel]) -> Callable[[RawProgramme], Optional[RawChannel]]:
        index = build_channel_index(channels)
        candidates = [channel for channel in channels if channel.display_name.strip()]
        token_cache: dict[str, Optional[RawChannel]] = {}

        def resolve(programme: RawProgramme) -> Optional[RawChannel]:
            channel = index.get(programme.channel_id)
            if channel is not None:
                return channel
            token = programme.channel_id
            if token not in token_cache:
                token_cache[token] = match_channel_by_name(candidates, token)
                logger.debug("Fuzzy match for channel token '%s': %s", token, token_cache[token])
            return token_cache[token]

        return resolve


def match_channel_by_name(channels: Iterable[RawChannel], token: str) -> Optional[RawChannel]:
    """Best fuzzy match for ``token``: the longest matching name, first on ties."""
    best: Optional[RawChannel] = None
    for channel in channels:
        if names_match(channel.display_name, token):
            if best is None or len(channel.display_name.strip()) > len(best.display_name.strip()):
                best = channel
    return best


def _cap_key(correlation: Correlation) -> tuple[str, str]:
    # unresolved tokens never share a count with a resolved channel id
    if correlation.channel is not None:
        return ("channel", correlation.channel.id)
    return ("unresolved", correlation.programme.channel_id)


def _apply_cap(correlations: Iterable[Correlation], cap_per_channel: int | None) -> list[Correlation]:
    """Keep programmes in encounter order until a channel reaches the cap."""
    if cap_per_channel is not None and cap_per_channel < 0:
        raise ValueError("cap_per_channel must be >= 0")

    kept: list[Correlation] = []
    counts: dict[tuple[str, str], int] = {}
    dropped = 0

    for correlation in correlations:
        key = _cap_key(correlation)
        count = counts.get(key, 0)
        if cap_per_channel is not None and count >= cap_per_channel:
            dropped += 1
            continue
        counts[key] = count + 1
        kept.append(correlation)

    if dropped:
        logger.debug("Per-channel cap of %s dropped %s programmes", cap_per_channel, dropped)
    return kept


def create_correlator(strategy: CorrelationStrategy) -> Correlator:
    """Build the correlator selected by configuration"""
    if strategy is CorrelationStrategy.FUZZY:
        return FuzzyNameCorrelator()
    return ExactIdCorrelator()
