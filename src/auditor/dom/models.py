# src/auditor/dom/models.py
from collections import Counter
from typing import Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, model_validator

from .core import FRAGMENT_ROOT_TAG, Element


class DocumentModel(BaseModel):
    """
    Immutable normalized representation of an audited document.

    `element_count` is derived from the tree when the model is constructed and
    never changes afterwards. Rules only ever read from this object.
    """
    model_config = ConfigDict(frozen=True)

    url: str
    root: Element
    element_count: int = 0

    @model_validator(mode='before')
    @classmethod
    def count_elements(cls, data):
        """Computes the node count once and enforces selector uniqueness."""
        if not isinstance(data, dict):
            return data

        root = data.get('root')
        if isinstance(root, dict):
            root = Element.model_validate(root)
        if not isinstance(root, Element):
            return data

        selectors = Counter(el.selector for el in root.iter())
        duplicates = sorted(sel for sel, n in selectors.items() if n > 1)
        if duplicates:
            raise ValueError(f"Selectors must be unique within a document, duplicated: {duplicates[:5]}")

        # The synthetic fragment root is not part of the audited markup
        count = sum(selectors.values()) - (1 if root.tag == FRAGMENT_ROOT_TAG else 0)
        return {**data, 'root': root, 'element_count': count}

    def iter_elements(self) -> Iterator[Element]:
        return self.root.iter()

    def walk(self) -> Iterator[Tuple[Element, Tuple[Element, ...]]]:
        """Pre-order traversal yielding each element with its ancestors (outermost first)."""
        stack: List[Tuple[Element, Tuple[Element, ...]]] = [(self.root, ())]
        while stack:
            node, ancestors = stack.pop()
            yield node, ancestors
            lineage = ancestors + (node,)
            for child in reversed(node.children):
                stack.append((child, lineage))

    def find_all(self, *tags: str) -> List[Element]:
        wanted = {t.lower() for t in tags}
        return [el for el in self.iter_elements() if el.tag in wanted]

    def find(self, tag: str) -> Optional[Element]:
        tag = tag.lower()
        return next((el for el in self.iter_elements() if el.tag == tag), None)

    def find_by_id(self, element_id: str) -> Optional[Element]:
        return next((el for el in self.iter_elements() if el.id == element_id), None)
