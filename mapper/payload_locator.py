# mapper/payload_locator.py
"""
Pick the XML element that best carries a schema's properties.

Scoring by property coverage lets the mapper skip SOAP Envelope/Header/Body
wrapping and arbitrary wrapper elements without protocol-specific parsing.
"""
import logging
from typing import Any, Dict, Optional

from extractors.xml_navigator import find_child_by_local_name, get_attribute_value
from extractors.xml_parser import XmlElement
from mapper.schema_resolver import get_schema_type, resolve_schema
from mapper.schemas import SchemaType

logger = logging.getLogger(__name__)

OBJECT_COVERAGE_WEIGHT = 2


def _best_covering_element(document: XmlElement, properties: Dict[str, Any]):
    best = None
    best_score = 0
    for element in document.iter():
        score = 0
        for key in properties:
            if get_attribute_value(element, key) is not None:
                score += 1
            elif find_child_by_local_name(element, key) is not None:
                score += 1
        if score > best_score:
            best = element
            best_score = score
    return best, best_score


def select_best_payload_node(document: Optional[XmlElement], schema_root: Optional[Dict[str, Any]],
                             spec: Optional[Dict[str, Any]] = None) -> Optional[XmlElement]:
    """
    Element of ``document`` satisfying the most root-schema property names

    Each property counts once, via attribute or direct child. Ties keep the
    element found first in document order. For an array of objects the
    parent of the best item candidate is returned, so it acts as the array
    wrapper. Falls back to the document root.
    """
    if document is None:
        return None

    spec = spec or {}
    resolved = resolve_schema(schema_root, spec)
    if not resolved:
        return document

    if get_schema_type(resolved, spec) == SchemaType.ARRAY:
        items = resolve_schema(resolved.get('items'), spec)
        item_properties = items.get('properties') if items else None
        if item_properties:
            best_item, _ = _best_covering_element(document, item_properties)
            if best_item is not None and best_item.parent is not None:
                logger.debug(f"Array payload wrapper <{best_item.parent.name}>")
                return best_item.parent
        return document

    properties = resolved.get('properties')
    if not properties:
        return document

    best, best_score = _best_covering_element(document, properties)
    if best is None:
        logger.debug("No payload candidate covers the schema, using document root")
        return document
    logger.debug(f"Payload node <{best.name}> covers {best_score}/{len(properties)} root properties")
    return best


def best_match_element_for_object(parent: Optional[XmlElement], schema_properties: Dict[str, Any]) -> Optional[XmlElement]:
    """Direct child of ``parent`` with the best attribute/child coverage of ``schema_properties``"""
    if parent is None or not schema_properties:
        return None

    best = None
    best_score = 0
    for child in parent.element_children:
        score = 0
        for key in schema_properties:
            if child.has_attribute(key):
                score += OBJECT_COVERAGE_WEIGHT
            if find_child_by_local_name(child, key) is not None:
                score += OBJECT_COVERAGE_WEIGHT
        if score > best_score:
            best_score = score
            best = child
    return best
