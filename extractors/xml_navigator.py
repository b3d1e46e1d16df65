# extractors/xml_navigator.py
"""
Namespace-agnostic traversal helpers over ``XmlElement`` trees.

No knowledge of OpenAPI lives here: lookups go exact -> case-insensitive ->
fuzzy (via the similarity engine), and every text value handed out passes
through mojibake repair.
"""
import re
import logging
from typing import List, Optional

from extractors.xml_parser import XmlElement
from mapper.similarity_engine import (
    ATTRIBUTE_MIN_SCORE,
    CHILD_MIN_SCORE,
    OWN_FIELD_MIN_SCORE,
    choose_best_element_by_name,
    score_name_match,
)

logger = logging.getLogger(__name__)

MOJIBAKE_PATTERN = re.compile(r'Ã.|Â.|â[\x80-\xBF]|\uFFFD')
MOJIBAKE_MAX_ROUNDS = 2


def looks_like_mojibake(value) -> bool:
    if not value or not isinstance(value, str):
        return False
    return bool(MOJIBAKE_PATTERN.search(value))


def repair_mojibake(value):
    """
    Undo UTF-8 text that was decoded as Latin-1 ("TelemÃ³vel" -> "Telemóvel")

    Re-encodes the low byte of every character and decodes as UTF-8, at most
    twice, stopping as soon as the text stops looking corrupted.
    """
    if value is None:
        return value
    text = str(value)
    if not looks_like_mojibake(text):
        return text

    for _ in range(MOJIBAKE_MAX_ROUNDS):
        try:
            decoded = bytes(ord(ch) & 0xFF for ch in text).decode('utf-8')
        except UnicodeDecodeError:
            break
        if not decoded or decoded == text:
            break
        text = decoded
        if not looks_like_mojibake(text):
            break
    return text


def get_local_name(node) -> str:
    if isinstance(node, str):
        return node.split(':')[-1]
    return node.local_name


def find_child_by_local_name(parent: Optional[XmlElement], name: str) -> Optional[XmlElement]:
    """First direct child named ``name``: exact, then case-insensitive, then best fuzzy match"""
    if parent is None or not name:
        return None
    children = parent.element_children

    for child in children:
        if child.local_name == name:
            return child

    lower_name = name.lower()
    for child in children:
        if child.local_name.lower() == lower_name:
            return child

    return choose_best_element_by_name(children, name, CHILD_MIN_SCORE)


def find_child_elements_by_local_name(parent: Optional[XmlElement], name: str) -> List[XmlElement]:
    """
    All direct children sharing the winning local name

    The fuzzy tier picks the best-scoring child and then returns every
    sibling carrying that same local name.
    """
    if parent is None or not name:
        return []
    children = parent.element_children

    results = [child for child in children if child.local_name == name]
    if results:
        return results

    lower_name = name.lower()
    results = [child for child in children if child.local_name.lower() == lower_name]
    if results:
        return results

    best = choose_best_element_by_name(children, name, CHILD_MIN_SCORE)
    if best is None:
        return []
    return [child for child in children if child.local_name == best.local_name]


def find_all_elements_by_local_name(root: Optional[XmlElement], name: str) -> List[XmlElement]:
    """Recursive descendant search (root included), exact local-name match only"""
    if root is None or not name:
        return []
    return [element for element in root.iter() if element.local_name == name]


def get_attribute_value(node: Optional[XmlElement], name: str) -> Optional[str]:
    """Attribute value by name: exact, case-insensitive, then fuzzy (score >= 70)"""
    if node is None or not node.attributes or not name:
        return None

    for attr_name, value in node.attributes:
        if get_local_name(attr_name) == name or attr_name == name:
            return repair_mojibake(value)

    lower_name = name.lower()
    for attr_name, value in node.attributes:
        if get_local_name(attr_name).lower() == lower_name or attr_name.lower() == lower_name:
            return repair_mojibake(value)

    best_value = None
    best_score = 0
    for attr_name, value in node.attributes:
        score = max(score_name_match(get_local_name(attr_name), name), score_name_match(attr_name, name))
        if score > best_score:
            best_score = score
            best_value = value
    if best_score >= ATTRIBUTE_MIN_SCORE:
        return repair_mojibake(best_value)
    return None


def element_text(node: Optional[XmlElement]) -> Optional[str]:
    """Trimmed, repaired text content of ``node``"""
    if node is None:
        return None
    return repair_mojibake(node.text_content.strip())


def extract_primitive(node: Optional[XmlElement], field_name: str) -> Optional[str]:
    """
    Value for ``field_name`` read from ``node``

    Looks at the attribute, then a direct child's text, then the node's own
    text when its name itself stands for the field. Never reads ancestor or
    unrelated text.
    """
    if node is None:
        return None

    attr_value = get_attribute_value(node, field_name)
    if attr_value:
        return attr_value

    child = find_child_by_local_name(node, field_name)
    if child is not None:
        text = element_text(child)
        if text:
            return text

    if score_name_match(node.local_name, field_name) >= OWN_FIELD_MIN_SCORE:
        own_text = element_text(node)
        if own_text:
            return own_text

    return None


def has_any_key(node: XmlElement, keys) -> bool:
    """True when ``node`` carries at least one of ``keys`` as attribute or direct child"""
    for key in keys:
        if get_attribute_value(node, key) is not None:
            return True
        if find_child_by_local_name(node, key) is not None:
            return True
    return False


def count_matched_keys(node: XmlElement, keys) -> int:
    return sum(
        1 for key in keys
        if get_attribute_value(node, key) is not None or find_child_by_local_name(node, key) is not None
    )
