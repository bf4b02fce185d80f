"""
Lifecycle Classifier
====================
Turns a decoded pool plus (optionally) the caller's wallet and seat into
what that caller can do right now.

Pure function of its inputs. The current time is always passed in.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from .models import Identity, Participation, PoolRecord, Stage, is_valid_door

logger = logging.getLogger(__name__)


# Reveal needs at least two players, in both modes
MIN_PARTICIPANTS_TO_REVEAL = 2

DEFAULT_TOTAL_DOORS = 25


class RevealMode(Enum):
    AUTOMATIC = "automatic"  # anyone may trigger after lock_time
    ARBITER = "arbiter"      # the arbiter picks the winning door


@dataclass(frozen=True)
class Classification:
    """Derived facts about one pool for one caller."""
    display_stage: Stage
    reveal_mode: RevealMode
    can_reveal: bool
    can_auto_reveal: bool
    can_cancel: bool
    can_claim: bool
    did_win: Optional[bool]
    winner_determined: bool
    is_creator: bool
    is_arbiter: bool
    seconds_until_lock: int
    anomalies: Tuple[str, ...] = ()

    @property
    def is_consistent(self) -> bool:
        return not self.anomalies

    def to_dict(self) -> dict:
        return {
            "stage": self.display_stage.label,
            "reveal_mode": self.reveal_mode.value,
            "can_reveal": self.can_reveal,
            "can_auto_reveal": self.can_auto_reveal,
            "can_cancel": self.can_cancel,
            "can_claim": self.can_claim,
            "did_win": self.did_win,
            "winner_determined": self.winner_determined,
            "is_creator": self.is_creator,
            "is_arbiter": self.is_arbiter,
            "seconds_until_lock": self.seconds_until_lock,
            "anomalies": list(self.anomalies),
        }


def find_anomalies(record: PoolRecord, total_doors: int = DEFAULT_TOTAL_DOORS) -> List[str]:
    """List layout-valid but semantically impossible states in a record."""
    issues = []
    stage = record.stage
    if stage is Stage.REVEALED:
        if record.winner_selection is None:
            issues.append("revealed without a winning door")
    elif stage is Stage.OPEN or stage is Stage.CANCELLED:
        if record.winner_selection is not None:
            issues.append(f"{stage.label} pool carries winning door {record.winner_selection}")
    else:
        raise AssertionError(f"unhandled stage {stage!r}")

    if record.winner_selection is not None and not is_valid_door(record.winner_selection, total_doors):
        issues.append(f"winning door {record.winner_selection} outside 1..{total_doors}")
    if record.min_deposit <= 0:
        issues.append("min_deposit is zero")
    return issues


def classify(
    record: PoolRecord,
    now: int,
    caller: Optional[Identity] = None,
    participation: Optional[Participation] = None,
    total_doors: int = DEFAULT_TOTAL_DOORS,
) -> Classification:
    """
    Classify a pool for a caller.

    Args:
        record: Decoded pool
        now: Current unix time in seconds
        caller: Wallet asking, or None for an anonymous viewer
        participation: Caller's seat, if they joined
        total_doors: Number of doors in the game

    Rules:
        cancel       - open, caller is creator
        reveal       - open, arbiter mode, caller is arbiter, >= 2 players
        auto-reveal  - open, automatic mode, now >= lock_time, >= 2 players
        did_win      - only once revealed with a winner and a seat supplied
        claim        - won and not yet claimed

    Never raises on a decoded record; impossible states are returned in
    `anomalies` and logged.
    """
    anomalies = find_anomalies(record, total_doors)
    if anomalies:
        logger.warning(f"Inconsistent pool state: {'; '.join(anomalies)}")

    is_creator = caller is not None and caller == record.creator
    is_arbiter = caller is not None and caller == record.arbiter
    enough_players = record.participant_count >= MIN_PARTICIPANTS_TO_REVEAL
    mode = RevealMode.AUTOMATIC if record.is_automatic else RevealMode.ARBITER

    can_reveal = False
    can_auto_reveal = False
    can_cancel = False
    did_win: Optional[bool] = None

    stage = record.stage
    if stage is Stage.OPEN:
        can_cancel = is_creator
        if mode is RevealMode.ARBITER:
            can_reveal = is_arbiter and enough_players
        else:
            can_auto_reveal = now >= record.lock_time and enough_players
    elif stage is Stage.REVEALED:
        if participation is not None and record.winner_selection is not None:
            did_win = participation.chosen_door == record.winner_selection
    elif stage is Stage.CANCELLED:
        pass
    else:
        raise AssertionError(f"unhandled stage {stage!r}")

    can_claim = did_win is True and participation is not None and not participation.has_claimed

    return Classification(
        display_stage=stage,
        reveal_mode=mode,
        can_reveal=can_reveal,
        can_auto_reveal=can_auto_reveal,
        can_cancel=can_cancel,
        can_claim=can_claim,
        did_win=did_win,
        winner_determined=stage is Stage.REVEALED and record.winner_selection is not None,
        is_creator=is_creator,
        is_arbiter=is_arbiter,
        seconds_until_lock=max(0, record.lock_time - now),
        anomalies=tuple(anomalies),
    )
