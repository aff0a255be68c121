# src/auditor/dom/builder.py
import logging
from collections import Counter
from typing import List, Optional, Set

from bs4 import BeautifulSoup, Tag
from pydantic import ValidationError

from .core import FRAGMENT_ROOT_TAG, Element
from .models import DocumentModel
from ..errors import ParseError

logger = logging.getLogger(__name__)



class DOMBuilder:
    """
    Builder responsible for parsing raw markup into an immutable DocumentModel.

    Every element receives a stable, unique CSS-like selector:
      - `tag#id` for the first element carrying a given id,
      - otherwise the parent's selector followed by `> tag`, with `:nth-of-type(n)`
        appended when the parent has several children of the same tag.
    """

    def parse_doc(self, url: str, html: str) -> DocumentModel:
        """
        Parses raw HTML content into a DocumentModel.

        Args:
            url (str): The URL (or upload name) of the document.
            html (str): The raw HTML string.

        Raises:
            ParseError: If the markup contains no elements or cannot be modelled.
        """
        # Basic cleanup of potentially dirty HTML (e.g., BOM)
        clean_html = (html or "").replace('\ufeff', '').strip()
        if not clean_html:
            raise ParseError(f"Document at {url} is empty")

        soup = BeautifulSoup(clean_html, 'html.parser')

        root_tag = soup.find('html')
        seen_ids: Set[str] = set()

        if isinstance(root_tag, Tag):
            root = self._build_tree(root_tag, None, seen_ids, position=None)
        else:
            top_level = [c for c in soup.children if isinstance(c, Tag)]
            if not top_level:
                raise ParseError(f"Document at {url} contains no elements")
            if len(top_level) == 1:
                root = self._build_tree(top_level[0], None, seen_ids, position=None)
            else:
                root = self._build_fragment(top_level, seen_ids)

        try:
            doc = DocumentModel(url=url, root=root)
        except ValidationError as e:
            raise ParseError(f"Could not build document model for {url}: {e}") from e

        logger.debug("Parsed %s into %d elements.", url, doc.element_count)
        return doc

    def _build_fragment(self, top_level: List[Tag], seen_ids: Set[str]) -> Element:
        selector = ":root"
        children = self._build_children(top_level, selector, seen_ids)
        return Element(tag=FRAGMENT_ROOT_TAG, selector=selector, children=tuple(children))

    def _build_children(self, tags: List[Tag], parent_selector: str, seen_ids: Set[str]) -> List[Element]:
        totals = Counter(t.name for t in tags)
        running = Counter()
        children = []
        for child in tags:
            running[child.name] += 1
            position = running[child.name] if totals[child.name] > 1 else None
            children.append(self._build_tree(child, parent_selector, seen_ids, position))
        return children

    def _build_tree(
            self,
            tag: Tag,
            parent_selector: Optional[str],
            seen_ids: Set[str],
            position: Optional[int]
    ) -> Element:
        """Recursively builds the element tree from a BeautifulSoup Tag."""
        selector = self._selector_for(tag, parent_selector, seen_ids, position)

        child_tags = [c for c in tag.children if isinstance(c, Tag)]
        children = self._build_children(child_tags, selector, seen_ids)

        text = tag.get_text(" ", strip=True)

        return Element(
            tag=tag.name,
            selector=selector,
            attributes=tag.attrs,
            text_content=text or None,
            children=tuple(children)
        )

    @staticmethod
    def _selector_for(
            tag: Tag,
            parent_selector: Optional[str],
            seen_ids: Set[str],
            position: Optional[int]
    ) -> str:
        element_id = tag.attrs.get('id')
        if isinstance(element_id, str):
            element_id = element_id.strip()
            if element_id and element_id not in seen_ids and not any(ch.isspace() for ch in element_id):
                seen_ids.add(element_id)
                return f"{tag.name}#{element_id}"

        step = tag.name if position is None else f"{tag.name}:nth-of-type({position})"
        if parent_selector is None:
            return step
        return f"{parent_selector} > {step}"
