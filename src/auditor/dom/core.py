# src/auditor/dom/core.py
from typing import Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Synthetic root used when a fragment has more than one top-level element
FRAGMENT_ROOT_TAG = "#fragment"


class Element(BaseModel):
    """
    Immutable node of the normalized document tree.

    Attribute values are always strings; multi-valued HTML attributes (e.g. `class`)
    are joined with a single space by the builder.
    """
    model_config = ConfigDict(frozen=True)

    tag: str
    selector: str
    attributes: Dict[str, str] = Field(default_factory=dict)
    text_content: Optional[str] = None
    children: Tuple['Element', ...] = ()

    @field_validator('tag', mode='before')
    @classmethod
    def lower_tag(cls, v: str) -> str:
        return v.lower() if isinstance(v, str) else v

    @field_validator('attributes', mode='before')
    @classmethod
    def stringify_attributes(cls, v):
        """Accepts bs4-style attribute dicts (list values for class/rel) and flattens them."""
        if not v:
            return {}
        out = {}
        for key, value in dict(v).items():
            if isinstance(value, (list, tuple)):
                value = " ".join(str(part) for part in value)
            out[str(key).lower()] = "" if value is None else str(value)
        return out

    # --- Convenience accessors ---

    @property
    def id(self) -> Optional[str]:
        return self.attributes.get('id') or None

    @property
    def classes(self) -> List[str]:
        return self.attributes.get('class', '').split()

    @property
    def text(self) -> str:
        """Stripped text content, empty string when absent."""
        return (self.text_content or "").strip()

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.attributes.get(name, default)

    def has(self, name: str) -> bool:
        return name in self.attributes

    def iter(self) -> Iterator['Element']:
        """Pre-order traversal starting with this element."""
        yield self
        for child in self.children:
            yield from child.iter()

    def descendants(self) -> Iterator['Element']:
        for child in self.children:
            yield from child.iter()
