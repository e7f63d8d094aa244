"""
Answer resolution for ShowQuestion payloads.

The hub encodes the correct answer as a bitmask string of length ``maxAnswers``
with a single '1'. Only an exact one-hot match resolves to an index.
"""

from typing import Any, Dict, Optional


def one_hot_masks(max_answers: int) -> Dict[str, int]:
    """Map every one-hot bitmask of width ``max_answers`` to its index."""
    masks = {}
    for index in range(max_answers):
        bits = ["0"] * max_answers
        bits[index] = "1"
        masks["".join(bits)] = index
    return masks


def resolve_answer_index(right_answer: Any, max_answers: int) -> Optional[int]:
    """Return the answer index for ``right_answer`` or None when nothing matches."""
    if not isinstance(right_answer, str) or max_answers <= 0:
        return None
    return one_hot_masks(max_answers).get(right_answer)
