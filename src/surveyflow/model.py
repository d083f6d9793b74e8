"""
Core Survey Model Objects

Defines the authored survey tree that navigation, the flow graph and the
layout engine all read from.

These are plain data classes representing:
    - Navigation rules (per-block branching)
    - Blocks (single questions / content items)
    - Pages ("sets" of blocks shown together)
    - Surveys (root section owning every page and block)

ARCHITECTURAL RULE:
    The tree is stored as an arena. The survey owns a dict of pages and a
    dict of blocks keyed by id; pages only hold block keys and the survey
    only holds page ids. Nothing points back up the tree, so copying,
    serializing and diffing never have to chase parent references.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple


SUBMIT_TARGET = "submit"


@dataclass
class NavigationRule:
    """
    One branching rule attached to a block.

    Properties:
        condition:
            Condition expression. Usually a free-form string such as
            ``age < 18``, but a structured rule dict or a list of them is
            accepted as well (see surveyflow.conditions).

        target:
            Page reference (uuid or name), block reference (uuid, field name
            or label) or the literal "submit".

        is_page:
            True when ``target`` names a page.

        is_default:
            Default rules are taken when no other rule matched, whatever
            their own condition says.
    """

    condition: Any
    target: str
    is_page: bool = False
    is_default: bool = False

    @property
    def is_submit(self) -> bool:
        return self.target == SUBMIT_TARGET

    def signature(self) -> Tuple[str, bool]:
        """Identity of a rule within a block's rule list: (condition, is_default)."""
        return (_condition_key(self.condition), self.is_default)


def _condition_key(condition: Any) -> str:
    if condition is None:
        return ""
    if isinstance(condition, str):
        return condition.strip()
    return repr(condition)


@dataclass
class Block:
    """
    A single authored item on a page: a question, a content block, etc.

    Properties:
        type:
            Block type as authored ("textfield", "radio", "checkbox", ...).

        uuid:
            Stable identifier. Optional: blocks without one are keyed by
            position (see Survey.add_block).

        field_name:
            Answer key this block writes into the answer context.

        label:
            Human-readable question text.

        navigation_rules:
            Ordered branching rules. Order is significant.

        visible_if:
            Optional condition. Absent means always visible.

        attributes:
            Every other authored key (options, description, ...), kept as-is
            so import/export is lossless.
    """

    type: str
    uuid: Optional[str] = None
    field_name: Optional[str] = None
    label: Optional[str] = None
    navigation_rules: List[NavigationRule] = field(default_factory=list)
    visible_if: Any = None
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def display_name(self) -> Optional[str]:
        return self.field_name or self.label or self.uuid


@dataclass
class Page:
    """
    A page ("set") of blocks shown together.

    Properties:
        uuid: Page identifier, also the page's graph node id
        name: Author-facing page name, usable as a navigation target
        block_keys: Keys into Survey.blocks, in display order
    """

    uuid: str
    name: str
    block_keys: List[str] = field(default_factory=list)


@dataclass
class Survey:
    """
    Root section of a survey.

    This is the authored artifact. The flow graph, its layout and every
    runtime navigation decision are derived from it.

    Properties:
        uuid: Root section identifier
        name: Survey name
        page_ids: Page order
        pages: Arena of pages by uuid
        blocks: Arena of blocks by block key

    INVARIANTS:
        - every id in page_ids is a key of pages
        - every block key of every page is a key of blocks
        - a block key belongs to exactly one page
    """

    uuid: str
    name: str = ""
    page_ids: List[str] = field(default_factory=list)
    pages: Dict[str, Page] = field(default_factory=dict)
    blocks: Dict[str, Block] = field(default_factory=dict)

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def add_page(self, uuid: str, name: Optional[str] = None) -> Page:
        if uuid in self.pages:
            raise ValueError(f"Duplicate page id: {uuid}")
        page = Page(uuid=uuid, name=name if name is not None else uuid)
        self.pages[uuid] = page
        self.page_ids.append(uuid)
        return page

    def add_block(self, page_id: str, block: Block) -> str:
        """
        Append a block to a page and return its block key.

        The key is the block's uuid, or ``{page_id}-block-{index}`` when the
        block has none.
        """
        page = self.pages[page_id]
        key = block.uuid or f"{page_id}-block-{len(page.block_keys)}"
        if key in self.blocks:
            raise ValueError(f"Duplicate block key: {key}")
        self.blocks[key] = block
        page.block_keys.append(key)
        return key

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_page(self, page_id: str) -> Optional[Page]:
        return self.pages.get(page_id)

    def get_block(self, block_key: str) -> Optional[Block]:
        return self.blocks.get(block_key)

    def ordered_pages(self) -> List[Page]:
        return [self.pages[pid] for pid in self.page_ids]

    def blocks_in(self, page_id: str) -> List[Block]:
        page = self.pages[page_id]
        return [self.blocks[key] for key in page.block_keys]

    def iter_blocks(self) -> Iterator[Tuple[str, str, Block]]:
        """Yield (page_id, block_key, block) in survey order."""
        for page_id in self.page_ids:
            for key in self.pages[page_id].block_keys:
                yield page_id, key, self.blocks[key]

    def block_order(self) -> List[str]:
        return [key for _, key, _ in self.iter_blocks()]

    def page_of(self, block_key: str) -> Optional[str]:
        for page_id in self.page_ids:
            if block_key in self.pages[page_id].block_keys:
                return page_id
        return None

    def find_page(self, ref: str) -> Optional[str]:
        """Resolve a page reference (uuid first, then name) to a page id."""
        if ref in self.pages:
            return ref
        for page_id in self.page_ids:
            if self.pages[page_id].name == ref:
                return page_id
        return None

    def find_block(self, ref: str) -> Optional[str]:
        """Resolve a block reference (uuid, field name, then label) to a block key."""
        if ref in self.blocks:
            return ref
        order = self.block_order()
        for key in order:
            if self.blocks[key].field_name == ref:
                return key
        for key in order:
            if self.blocks[key].label == ref:
                return key
        return None

    def field_names(self) -> List[str]:
        return [b.field_name for _, _, b in self.iter_blocks() if b.field_name]


__all__ = [
    "SUBMIT_TARGET",
    "NavigationRule",
    "Block",
    "Page",
    "Survey",
]
