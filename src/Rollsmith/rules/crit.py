"""Critical-result classification for evaluated rolls."""

from __future__ import annotations

from collections.abc import Collection, Iterable

from Rollsmith.rules.types import CritClassification, CritType, EvaluatedRoll

ALL_FACES = None


def count_crit_dice(
    rolls: Iterable[EvaluatedRoll],
    threshold: int | None = None,
    faces: Collection[int] | None = ALL_FACES,
) -> tuple[int, int]:
    """Return ``(high, low)`` over the active dice of the given rolls.

    A die counts when it has more than one face and, if ``faces`` is given,
    its face count is listed. High means at or above ``threshold`` (the die's
    own face count by default); low means exactly 1.
    """
    high = 0
    low = 0
    for roll in rolls:
        for term in roll.dice:
            if term.faces <= 1 or (faces is not None and term.faces not in faces):
                continue
            limit = threshold or term.faces
            for value in term.values:
                if value >= limit:
                    high += 1
                elif value == 1:
                    low += 1
    return high, low


def classification_from_counts(high: int, low: int) -> CritClassification:
    if high > 0 and low > 0:
        crit_type = CritType.MIXED
    elif high > 0:
        crit_type = CritType.SUCCESS
    elif low > 0:
        crit_type = CritType.FAILURE
    else:
        crit_type = CritType.NONE
    # A single qualifying die is a "success" but never a crit.
    return CritClassification(crit_type=crit_type, is_crit=high > 1, high=high, low=low)


def classify(
    roll: EvaluatedRoll | None,
    threshold: int | None = None,
    faces: Collection[int] | None = ALL_FACES,
) -> CritClassification | None:
    if roll is None:
        return None
    return classification_from_counts(*count_crit_dice([roll], threshold, faces))
