"""
Runtime navigation: from a block's rules and the current answers to the
next destination.

Two layers:
    resolve()     rules + answers -> Destination | None   (pure rule logic)
    next_step()   survey + current block + answers -> concrete position,
                  falling back to survey order when no rule applies
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from surveyflow.conditions import evaluate
from surveyflow.model import Block, NavigationRule, Survey


logger = logging.getLogger(__name__)


class DestinationKind(Enum):
    BLOCK = "block"
    PAGE = "page"
    SUBMIT = "submit"


@dataclass(frozen=True)
class Destination:
    """
    Where a matched rule sends the respondent.

    ``target`` is the rule's raw reference (page name/uuid, block field
    name/label/uuid); it is None for submit.
    """

    kind: DestinationKind
    target: Optional[str] = None
    rule_index: Optional[int] = None

    @classmethod
    def from_rule(cls, rule: NavigationRule, index: Optional[int] = None) -> "Destination":
        if rule.is_submit:
            return cls(DestinationKind.SUBMIT, None, index)
        if rule.is_page:
            return cls(DestinationKind.PAGE, rule.target, index)
        return cls(DestinationKind.BLOCK, rule.target, index)


@dataclass(frozen=True)
class Position:
    """
    A concrete place in the survey.

    ``page_id``/``block_key`` are None when ``is_submit`` is True. A page
    destination lands on the page's first block (None for an empty page).
    """

    page_id: Optional[str] = None
    block_key: Optional[str] = None
    is_submit: bool = False
    via_rule: bool = False


SUBMIT = Position(is_submit=True)


def resolve(
    rules: Iterable[NavigationRule],
    context: Mapping[str, Any],
    now=None,
) -> Optional[Destination]:
    """
    Pick the destination for a rule list.

    The first rule, in author order, whose condition holds wins. Default
    rules take part in that pass like any other rule. If nothing matched,
    the first default rule is taken regardless of its condition. With no
    match and no default the result is None and the caller falls back to
    survey order.
    """
    rules = list(rules)
    for index, rule in enumerate(rules):
        if evaluate(rule.condition, context, now):
            return Destination.from_rule(rule, index)

    for index, rule in enumerate(rules):
        if rule.is_default:
            return Destination.from_rule(rule, index)

    return None


def is_block_visible(block: Block, context: Mapping[str, Any], now=None) -> bool:
    if block.visible_if is None or block.visible_if == "":
        return True
    return evaluate(block.visible_if, context, now)


def _sequential_after(survey: Survey, block_key: str) -> Position:
    order = survey.block_order()
    index = order.index(block_key)
    if index + 1 < len(order):
        next_key = order[index + 1]
        return Position(page_id=survey.page_of(next_key), block_key=next_key)

    # Trailing empty pages still come before submit.
    page_id = survey.page_of(block_key)
    page_index = survey.page_ids.index(page_id)
    if page_index + 1 < len(survey.page_ids):
        return Position(page_id=survey.page_ids[page_index + 1])
    return SUBMIT


def locate(survey: Survey, destination: Destination) -> Optional[Position]:
    """Resolve a Destination against the survey; None when its target is unknown."""
    if destination.kind is DestinationKind.SUBMIT:
        return Position(is_submit=True, via_rule=True)

    if destination.kind is DestinationKind.PAGE:
        page_id = survey.find_page(destination.target)
        if page_id is None:
            return None
        keys = survey.pages[page_id].block_keys
        return Position(page_id=page_id, block_key=keys[0] if keys else None, via_rule=True)

    block_key = survey.find_block(destination.target)
    if block_key is None:
        return None
    return Position(page_id=survey.page_of(block_key), block_key=block_key, via_rule=True)


def next_step(survey: Survey, block_key: str, context: Mapping[str, Any], now=None) -> Position:
    """
    Where to go after answering ``block_key``.

    Rules of the block are resolved first. A destination whose target cannot
    be found in the survey is ignored (and logged). Without a usable rule the
    next block in survey order is returned, then the next page, then submit.

    Raises:
        KeyError: If block_key is not a block of the survey
    """
    block = survey.blocks[block_key]
    destination = resolve(block.navigation_rules, context, now)
    if destination is not None:
        position = locate(survey, destination)
        if position is not None:
            return position
        logger.warning(
            "Block %s: navigation target %r not found, continuing in order",
            block_key,
            destination.target,
        )
    return _sequential_after(survey, block_key)


def next_page(survey: Survey, page_id: str, context: Mapping[str, Any], now=None) -> Position:
    """
    Page-by-page navigation: where to go after submitting a whole page.

    The rules of every visible block on the page are resolved in block order;
    the first block that yields a usable destination decides. Otherwise the
    next page in order (or submit) follows.
    """
    page = survey.pages[page_id]
    for key in page.block_keys:
        block = survey.blocks[key]
        if not is_block_visible(block, context, now):
            continue
        destination = resolve(block.navigation_rules, context, now)
        if destination is None:
            continue
        position = locate(survey, destination)
        if position is not None:
            return position
        logger.warning("Page %s: navigation target %r not found", page_id, destination.target)

    index = survey.page_ids.index(page_id)
    if index + 1 < len(survey.page_ids):
        next_id = survey.page_ids[index + 1]
        keys = survey.pages[next_id].block_keys
        return Position(page_id=next_id, block_key=keys[0] if keys else None)
    return SUBMIT


__all__ = [
    "DestinationKind",
    "Destination",
    "Position",
    "SUBMIT",
    "resolve",
    "is_block_visible",
    "locate",
    "next_step",
    "next_page",
]
