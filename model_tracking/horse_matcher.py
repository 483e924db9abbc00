"""
Resolve a runner to its finishing position when the result source and the race
card disagree on identifiers or name formatting.

Stages, first hit wins:
    1. horse id
    2. bare name (country suffix stripped, case-folded)
    3. prefix match on bare names, in either direction
Anything else is UNMATCHED (non-runner or a gap in the result source). A name that
resolves to more than one distinct position is AMBIGUOUS and credits nothing.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from model_tracking.records import RaceEntry, RacePositions

logger = logging.getLogger(__name__)

_COUNTRY_SUFFIX = re.compile(r'\s*\([A-Z]{2,3}\)\s*$')


class MatchOutcome(str, Enum):
    MATCHED = 'matched'
    UNMATCHED = 'unmatched'
    AMBIGUOUS = 'ambiguous'


class MatchMethod(str, Enum):
    HORSE_ID = 'horse_id'
    BARE_NAME = 'bare_name'
    PREFIX = 'prefix'


@dataclass(frozen=True)
class MatchResult:
    outcome: MatchOutcome
    position: Optional[int] = None
    method: Optional[MatchMethod] = None

    @property
    def matched(self) -> bool:
        return self.outcome is MatchOutcome.MATCHED


UNMATCHED = MatchResult(MatchOutcome.UNMATCHED)
AMBIGUOUS = MatchResult(MatchOutcome.AMBIGUOUS)


def bare_horse_name(name: Optional[str]) -> str:
    """'Kingmambo (IRE)' -> 'kingmambo'"""
    if not name:
        return ''
    return _COUNTRY_SUFFIX.sub('', name.strip()).lower().strip()


def match_position(entry: RaceEntry, race_positions: Optional[RacePositions]) -> MatchResult:
    """
    Find the finishing position of a runner in one race's results.

    Args:
        entry: Runner from the race card
        race_positions: Confirmed positions for the same race

    Returns:
        MatchResult with outcome MATCHED, UNMATCHED or AMBIGUOUS
    """
    if not race_positions:
        return UNMATCHED

    if entry.horse_id and entry.horse_id in race_positions.by_horse_id:
        return MatchResult(MatchOutcome.MATCHED, race_positions.by_horse_id[entry.horse_id], MatchMethod.HORSE_ID)

    bare_name = bare_horse_name(entry.horse_name)
    if not bare_name:
        return UNMATCHED

    if bare_name in race_positions.by_name:
        if bare_name in race_positions.ambiguous_names:
            logger.warning(f"Ambiguous result name '{bare_name}' in race {entry.race_id}; not credited")
            return AMBIGUOUS
        return MatchResult(MatchOutcome.MATCHED, race_positions.by_name[bare_name], MatchMethod.BARE_NAME)

    candidates = {
        result_name: position
        for result_name, position in race_positions.by_name.items()
        if result_name.startswith(bare_name) or bare_name.startswith(result_name)
    }
    if not candidates:
        return UNMATCHED

    positions = set(candidates.values())
    if len(positions) > 1 or any(name in race_positions.ambiguous_names for name in candidates):
        logger.warning(
            f"'{bare_name}' prefix-matches {sorted(candidates)} in race {entry.race_id}; not credited"
        )
        return AMBIGUOUS

    return MatchResult(MatchOutcome.MATCHED, positions.pop(), MatchMethod.PREFIX)
