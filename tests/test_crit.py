from Rollsmith.rules.crit import classify, count_crit_dice
from Rollsmith.rules.types import CritType


def test_single_natural_twenty_is_success_not_crit(scripted):
    c = classify(scripted(20).evaluate("1d20 + 5"))
    assert c.crit_type is CritType.SUCCESS
    assert c.is_crit is False
    assert c.high == 1


def test_two_high_dice_make_a_crit(scripted):
    c = classify(scripted(20, 20).evaluate("2d20"))
    assert c.crit_type is CritType.SUCCESS
    assert c.is_crit is True


def test_mixed_needs_high_and_low(scripted):
    c = classify(scripted(20, 1).evaluate("2d20"))
    assert c.crit_type is CritType.MIXED
    assert (c.high, c.low) == (1, 1)


def test_failure_and_none(scripted):
    assert classify(scripted(1).evaluate("1d20")).crit_type is CritType.FAILURE
    assert classify(scripted(10).evaluate("1d20")).crit_type is CritType.NONE
    assert classify(scripted(1).evaluate("1d1")).crit_type is CritType.NONE


def test_threshold_lowers_the_high_mark(scripted):
    roll = scripted(19, 19).evaluate("2d20")
    assert classify(roll).crit_type is CritType.NONE
    assert classify(roll, threshold=19).is_crit is True


def test_faces_filter(scripted):
    roll = scripted(20, 6).evaluate("1d20 + 1d6")
    assert classify(roll).is_crit is True
    limited = classify(roll, faces=(20,))
    assert limited.is_crit is False
    assert limited.high == 1


def test_discarded_dice_are_ignored(scripted):
    c = classify(scripted(1, 20).evaluate("2d20kh"))
    assert c.crit_type is CritType.SUCCESS


def test_rerolled_one_is_not_a_failure(scripted):
    c = classify(scripted(1, 15).evaluate("1d20r<2"))
    assert c.low == 0
    assert c.crit_type is CritType.NONE


def test_none_roll_and_purity(scripted):
    assert classify(None) is None
    roll = scripted(20, 1).evaluate("2d20")
    assert classify(roll) == classify(roll)
    assert count_crit_dice([roll, roll]) == (2, 2)
