"""
Token-budget tier selection.

A provider groups its models into families ordered by context window. The
larger member of a family is only worth paying for when the request does not
fit the smaller sibling's window minus a safety margin.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from llmbridge.errors import InvalidCost, UnknownModel


@dataclass(frozen=True)
class TierFamily:
    """One capability class: a small model and the larger model that can replace it.

    ``downgrade_to`` is the model returned when a request for ``large`` fits
    under ``cutoff``. It is usually ``small`` but a provider may point it at
    another family.
    """

    small: str
    large: str
    cutoff: int
    downgrade_to: str

    @property
    def members(self) -> tuple[str, str]:
        return (self.small, self.large)


def validate_cost(cost: object) -> int:
    if isinstance(cost, bool) or not isinstance(cost, int):
        raise InvalidCost(f"adjust_model: cost is not an int: {cost!r}, type={type(cost).__name__}")
    if cost < 0:
        raise InvalidCost(f"adjust_model: cost is negative: {cost}")
    return cost


def select_tier(families: Iterable[TierFamily], cost: object, model_name: str) -> str:
    """Return the cheapest model that can hold ``cost`` tokens for a request on ``model_name``.

    The largest declared tier is a ceiling: requests that do not fit it are
    not escalated anywhere else.
    """
    cost = validate_cost(cost)
    for family in families:
        if model_name == family.small:
            return model_name
        if model_name == family.large:
            return family.downgrade_to if cost < family.cutoff else model_name
    raise UnknownModel(f"adjust_model: Unknown model: {model_name}")
