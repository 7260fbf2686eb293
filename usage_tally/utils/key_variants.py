"""Wildcard fan-out for billing dimensions.

Each wildcard-capable dimension contributes its concrete value and its
wildcard, so N dimensions produce at most 2**N combinations. Queries can
then match either a specific value or "any" on a single indexed key.
"""

from itertools import product
from typing import Hashable, Sequence, TypeVar

T = TypeVar("T", bound=Hashable)


def wildcard_variants(values: Sequence[T], wildcards: Sequence[T]) -> list[tuple[T, ...]]:
    """
    Enumerate every combination of concrete and wildcard values.

    Args:
        values: Concrete value per dimension
        wildcards: Wildcard sentinel per dimension, aligned with ``values``

    Returns:
        Distinct combinations, concrete values first. A dimension whose value
        already equals its wildcard contributes a single choice.

    Raises:
        ValueError: If ``values`` and ``wildcards`` differ in length
    """
    if len(values) != len(wildcards):
        raise ValueError("values and wildcards must have the same length")

    choices = [tuple(dict.fromkeys((value, wildcard))) for value, wildcard in zip(values, wildcards)]
    return list(product(*choices))
