"""Unit tests for one-hot answer resolution"""

import pytest

from quizswarm.domain.services.answer_resolution import one_hot_masks, resolve_answer_index


def test_one_hot_masks_width_four():
    assert one_hot_masks(4) == {"1000": 0, "0100": 1, "0010": 2, "0001": 3}


@pytest.mark.parametrize("right_answer,max_answers,expected", [
    ("0010", 4, 2),
    ("1000", 4, 0),
    ("01", 2, 1),
    ("000001", 6, 5),
    ("0000", 4, None),
    ("0110", 4, None),
    ("010", 4, None),
    ("0010", 0, None),
    (None, 4, None),
    (2, 4, None),
])
def test_resolve_answer_index(right_answer, max_answers, expected):
    assert resolve_answer_index(right_answer, max_answers) == expected
