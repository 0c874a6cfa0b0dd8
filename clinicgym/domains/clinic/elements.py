"""Five-element (wuxing) interaction model.

Two fixed directed cycles over the five elements:

- Weakening cycle (相剋), drives the toxicity amplifier:
  Metal weakens Wood, Wood weakens Earth, Earth weakens Water,
  Water weakens Fire, Fire weakens Metal.
- Benefit cycle (相生), drives the satisfaction bonus:
  Wood benefits Fire, Fire benefits Earth, Earth benefits Metal,
  Metal benefits Water, Water benefits Wood.

Each element has exactly one predecessor in each cycle.
"""

from enum import Enum
from typing import Optional, Union


class Element(str, Enum):
    """Elemental constitution / remedy affinity."""
    WOOD = "wood"
    FIRE = "fire"
    EARTH = "earth"
    METAL = "metal"
    WATER = "water"


# element -> the element that weakens it
WEAKENED_BY: dict[Element, Element] = {
    Element.WOOD: Element.METAL,
    Element.EARTH: Element.WOOD,
    Element.WATER: Element.EARTH,
    Element.FIRE: Element.WATER,
    Element.METAL: Element.FIRE,
}

# element -> the element that benefits it
BENEFITED_BY: dict[Element, Element] = {
    Element.FIRE: Element.WOOD,
    Element.EARTH: Element.FIRE,
    Element.METAL: Element.EARTH,
    Element.WATER: Element.METAL,
    Element.WOOD: Element.WATER,
}

# Catalog files may spell elements with their glyphs.
ELEMENT_GLYPHS: dict[str, Element] = {
    "木": Element.WOOD,
    "火": Element.FIRE,
    "土": Element.EARTH,
    "金": Element.METAL,
    "水": Element.WATER,
}


def weakening_element(constitution: Element) -> Element:
    """Return the element whose remedies are amplified in toxicity."""
    return WEAKENED_BY[Element(constitution)]


def benefiting_element(constitution: Element) -> Element:
    """Return the element whose remedies earn the satisfaction bonus."""
    return BENEFITED_BY[Element(constitution)]


def parse_element(value: Union[Element, str, None]) -> Optional[Element]:
    """Parse an element from an enum, name, value or glyph.

    Empty values map to ``None`` (no affinity). Anything else that is not
    recognised raises ``ValueError``.
    """
    if value is None or isinstance(value, Element):
        return value
    text = str(value).strip()
    if not text or text.lower() == "none":
        return None
    if text in ELEMENT_GLYPHS:
        return ELEMENT_GLYPHS[text]
    try:
        return Element(text.lower())
    except ValueError:
        raise ValueError(
            f"Unknown element '{value}'. Available: {[e.value for e in Element]}"
        ) from None
