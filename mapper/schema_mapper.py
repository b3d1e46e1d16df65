# mapper/schema_mapper.py
"""
Schema-driven XML -> JSON mapping

Walks an OpenAPI schema and, for every property, locates the XML node that
"means" it (fuzzy names + schema-compatibility boosts), recursing into
objects, framing arrays (wrapper or repeated siblings) and converting
primitives. The schema is the source of truth: every object in the output has
exactly the schema's keys, unresolved ones filled with an empty value.
"""
import math
import re
import logging
from typing import Any, Dict, List, Optional, Union

from extractors.xml_navigator import (
    count_matched_keys,
    element_text,
    extract_primitive,
    find_child_by_local_name,
    find_child_elements_by_local_name,
    get_attribute_value,
    has_any_key,
    repair_mojibake,
)
from extractors.xml_parser import XmlElement, clean_xml_input, parse_xml_safely
from mapper.payload_locator import best_match_element_for_object, select_best_payload_node
from mapper.pruner import prune_empty_fields
from mapper.schema_resolver import (
    broken_ref,
    get_schema_items,
    get_schema_properties,
    get_schema_type,
    get_xml_hints,
    resolve_schema,
)
from mapper.schemas import MappingDiagnostic, MappingResult, SchemaType
from mapper.similarity_engine import (
    ARRAY_BOOST,
    CHILD_MIN_SCORE,
    NAME_VALUE_MIN_SCORE,
    OBJECT_BOOST_CAP,
    OBJECT_BOOST_PER_KEY,
    OWN_FIELD_MIN_SCORE,
    OWN_NODE_MIN_SCORE,
    TEXT_BOOST,
    best_score_for_names,
    pluralize,
    score_name_match,
    singularize,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 32

NAME_ALIASES = ('name', 'key', 'field', 'nome', 'chave')
VALUE_ALIASES = ('value', 'val', 'content', 'valor', 'conteudo', 'description', 'descricao')

TRUE_STRINGS = ('true', '1', 'yes')
FALSE_STRINGS = ('false', '0', 'no')

_DECIMAL = re.compile(r'^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$')
_RADIX = {'0x': 16, '0o': 8, '0b': 2}


def parse_number(text) -> Optional[Union[int, float]]:
    """Numeric value of ``text`` with JavaScript ``Number()`` rules, None when not numeric"""
    candidate = str(text).strip()
    if not candidate:
        return None
    prefix = candidate[:2].lower()
    if prefix in _RADIX:
        try:
            return int(candidate[2:], _RADIX[prefix])
        except ValueError:
            return None
    if not _DECIMAL.match(candidate):
        return None
    number = float(candidate)
    if math.isinf(number):
        return None
    return int(number) if number.is_integer() else number


def convert_xml_value(value, schema_type) -> Any:
    """
    Convert XML text to the schema's primitive type

    Non-numeric text for number/integer and unrecognised booleans are left as
    the original (repaired) string.
    """
    if value is None:
        return None
    schema_type = SchemaType.from_value(schema_type)
    normalized = repair_mojibake(value)

    if schema_type in (SchemaType.NUMBER, SchemaType.INTEGER):
        number = parse_number(normalized)
        if number is None:
            return normalized
        return math.floor(number) if schema_type == SchemaType.INTEGER else number

    if schema_type == SchemaType.BOOLEAN:
        lowered = str(normalized).strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
        return normalized

    return str(normalized)


def empty_value_for(schema_type: SchemaType) -> Any:
    if schema_type == SchemaType.STRING:
        return ''
    if schema_type == SchemaType.ARRAY:
        return []
    if schema_type == SchemaType.OBJECT:
        return {}
    return None


def _schema_boost(child: XmlElement, resolved: Optional[Dict[str, Any]], spec: Dict[str, Any]) -> int:
    if not resolved:
        return 0
    schema_type = get_schema_type(resolved, spec)
    if schema_type == SchemaType.OBJECT and resolved.get('properties'):
        matched = count_matched_keys(child, resolved['properties'])
        return min(OBJECT_BOOST_CAP, matched * OBJECT_BOOST_PER_KEY)
    if schema_type == SchemaType.ARRAY:
        return ARRAY_BOOST
    return TEXT_BOOST if child.text_content.strip() else 0


def find_matching_xml_node(context: Optional[XmlElement], property_name: str,
                           property_schema: Optional[Dict[str, Any]], spec: Dict[str, Any]) -> Optional[XmlElement]:
    """
    XML node that best represents ``property_name`` under ``context``

    When no child qualifies the context itself is returned, so primitive
    extraction can still read an attribute or its own text from it.
    """
    if context is None or not property_name:
        return context

    resolved = resolve_schema(property_schema, spec)
    xml_hints = get_xml_hints(resolved, spec) if resolved else {}

    if xml_hints.get('attribute'):
        if get_attribute_value(context, xml_hints.get('name') or property_name) is not None:
            return context

    candidate_names = []
    if xml_hints.get('name'):
        candidate_names.append(xml_hints['name'])
    candidate_names.extend([property_name, singularize(property_name), pluralize(property_name)])

    best_node = None
    best_score = 0
    for child in context.element_children:
        name_score = best_score_for_names(child.local_name, candidate_names)
        if name_score == 0:
            continue
        total = name_score + _schema_boost(child, resolved, spec)
        if total > best_score:
            best_score = total
            best_node = child

    if best_node is not None and best_score >= CHILD_MIN_SCORE:
        return best_node

    if score_name_match(context.local_name, property_name) >= OWN_NODE_MIN_SCORE:
        logger.debug(f"'{property_name}' is represented by <{context.name}> itself")
    return context


def map_name_value_pair(item: Optional[XmlElement]) -> Optional[Dict[str, str]]:
    """``{name, value}`` from an item written as a generic name/value (key/valor...) pair"""
    if item is None:
        return None

    def _find(aliases):
        for alias in aliases:
            node = find_child_by_local_name(item, alias)
            if node is not None and score_name_match(node.local_name, alias) >= NAME_VALUE_MIN_SCORE:
                return node
        return None

    name_node = _find(NAME_ALIASES)
    value_node = _find(VALUE_ALIASES)
    name_text = element_text(name_node)
    value_text = element_text(value_node)
    if not name_text or value_text is None:
        return None
    return {'name': name_text, 'value': value_text}


class SchemaDrivenMapper:
    """
    One mapping run over a parsed document

    Holds the OpenAPI document and the diagnostics collected during the run;
    schema nodes and XML elements are only read.
    """

    def __init__(self, spec: Dict[str, Any], max_depth: int = DEFAULT_MAX_DEPTH,
                 diagnostics: Optional[List[MappingDiagnostic]] = None):
        self.spec = spec or {}
        self.max_depth = max_depth
        self.diagnostics = diagnostics if diagnostics is not None else []
        self._depth_reported = False

    def _report(self, message: str, path: str, severity: str = 'warning'):
        logger.warning(f"{message} (at '{path or '<root>'}')")
        self.diagnostics.append(MappingDiagnostic(message=message, path=path, severity=severity))

    def map_node(self, schema_node, element: Optional[XmlElement], path: str = '', depth: int = 0) -> Any:
        """Mapped value for ``schema_node`` read from ``element``; None when unmapped"""
        if schema_node is None or element is None:
            return None

        if depth > self.max_depth:
            if not self._depth_reported:
                self._depth_reported = True
                self._report(f"Schema nesting deeper than {self.max_depth} levels, stopping", path)
            return None

        resolved = resolve_schema(schema_node, self.spec)
        if resolved is None:
            ref = broken_ref(schema_node, self.spec)
            self._report(f"Could not resolve schema reference '{ref}' for XML node <{element.name}>", path, 'error')
            return None

        schema_type = get_schema_type(resolved, self.spec)
        if schema_type == SchemaType.OBJECT:
            return self._map_object(resolved, element, path, depth)
        if schema_type == SchemaType.ARRAY:
            return self._map_array(resolved, element, path, depth)
        if schema_type.is_primitive:
            return self._map_primitive(resolved, schema_type, element, path)
        return None

    def _map_object(self, resolved, element, path, depth) -> Dict[str, Any]:
        result = {}
        for property_name, property_schema in get_schema_properties(resolved, self.spec).items():
            property_path = f"{path}.{property_name}" if path else property_name

            matched = find_matching_xml_node(element, property_name, property_schema, self.spec)
            if matched is None or matched is element:
                resolved_property = resolve_schema(property_schema, self.spec)
                if resolved_property and resolved_property.get('properties'):
                    matched = best_match_element_for_object(element, resolved_property['properties'])
            if matched is None:
                matched = element

            logger.debug(f"{property_path} -> <{matched.name}>")
            value = self.map_node(property_schema, matched, property_path, depth + 1)
            if value is None:
                value = empty_value_for(get_schema_type(property_schema, self.spec))
            result[property_name] = value
        return result

    def _map_array(self, resolved, element, path, depth) -> List[Any]:
        items_schema = get_schema_items(resolved, self.spec)
        if not items_schema:
            self._report(f"Array schema without items for XML node <{element.name}>", path)
            return []

        array_name = path.split('.')[-1] if path else ''
        if array_name.endswith('[]'):
            array_name = array_name[:-2]

        resolved_items = resolve_schema(items_schema, self.spec)
        item_keys = list((resolved_items or {}).get('properties') or {})
        item_nodes = self._collect_array_items(element, array_name, item_keys)

        lowered_keys = {key.lower() for key in item_keys}
        name_value_items = 'name' in lowered_keys and 'value' in lowered_keys

        result = []
        for node in item_nodes:
            if name_value_items:
                pair = map_name_value_pair(node)
                if pair is not None:
                    result.append(pair)
                    continue
            mapped = self.map_node(items_schema, node, f"{path}[]", depth + 1)
            if mapped is not None:
                result.append(mapped)
        return result

    def _collect_array_items(self, element: XmlElement, array_name: str, item_keys: List[str]) -> List[XmlElement]:
        # The context itself is the wrapper at the top level or when it is named after the array
        if not array_name or score_name_match(element.local_name, array_name) >= OWN_NODE_MIN_SCORE:
            items = self._items_from_wrapper(element, item_keys)
            if items or not array_name:
                return items

        wrapper = find_child_by_local_name(element, array_name)
        if wrapper is not None:
            items = self._items_from_wrapper(wrapper, item_keys)
            if items:
                return items

        items = find_child_elements_by_local_name(element, singularize(array_name))
        if items:
            return items

        if item_keys:
            best_name = self._best_item_name(element, item_keys)
            if best_name:
                return find_child_elements_by_local_name(element, best_name)

        # Repeated-sibling pattern reached through its first element
        own_score = max(
            score_name_match(element.local_name, singularize(array_name)),
            score_name_match(pluralize(element.local_name), array_name)
        )
        if own_score >= OWN_FIELD_MIN_SCORE:
            return element.siblings_named(element.local_name)
        return []

    def _items_from_wrapper(self, wrapper: XmlElement, item_keys: List[str]) -> List[XmlElement]:
        children = wrapper.element_children
        if item_keys:
            items = [c for c in children if has_any_key(c, item_keys) or self._stands_for_property(c, item_keys)]
            if not items and has_any_key(wrapper, item_keys):
                items = [wrapper]
            return items
        if children:
            return children
        return [wrapper]

    @staticmethod
    def _stands_for_property(node: XmlElement, item_keys: List[str]) -> bool:
        """A leaf whose own name is one of the item's properties"""
        if node.has_element_children:
            return False
        return any(score_name_match(node.local_name, key) >= OWN_FIELD_MIN_SCORE for key in item_keys)

    @staticmethod
    def _best_item_name(element: XmlElement, item_keys: List[str]) -> Optional[str]:
        totals = {}
        for child in element.element_children:
            match_count = 0
            for key in item_keys:
                if child.has_attribute(key):
                    match_count += 1
                if find_child_by_local_name(child, key) is not None:
                    match_count += 1
            if match_count > 0:
                totals[child.local_name] = totals.get(child.local_name, 0) + match_count

        best_name = None
        best_score = 0
        for name, score in totals.items():
            if score > best_score:
                best_score = score
                best_name = name
        return best_name

    def _map_primitive(self, resolved, schema_type: SchemaType, element: XmlElement, path: str) -> Any:
        property_name = path.split('.')[-1] if path else ''
        if property_name.endswith('[]'):
            property_name = property_name[:-2]
        field_name = (resolved.get('xml') or {}).get('name') or property_name

        value = extract_primitive(element, field_name) if field_name else None
        if not value:
            own_text = element.text_content.strip()
            if element.has_element_children or not own_text:
                return None
            value = own_text

        converted = convert_xml_value(value, schema_type)
        allowed = resolved.get('enum')
        if allowed and converted not in allowed:
            self._report(f"Value '{converted}' is not in the enum for {property_name or element.local_name}", path)
        return converted


def map_by_schema(schema_node, context_element: Optional[XmlElement], spec: Dict[str, Any], path: str = '',
                  diagnostics: Optional[List[MappingDiagnostic]] = None, max_depth: int = DEFAULT_MAX_DEPTH) -> Any:
    """Map ``context_element`` onto ``schema_node``; diagnostics are appended to ``diagnostics`` when given"""
    mapper = SchemaDrivenMapper(spec, max_depth=max_depth, diagnostics=diagnostics)
    return mapper.map_node(schema_node, context_element, path)


def map_xml_to_json(xml_text: str, schema: Dict[str, Any], spec: Dict[str, Any], prune: bool = False,
                    max_depth: int = DEFAULT_MAX_DEPTH) -> MappingResult:
    """
    Parse ``xml_text`` and map its payload onto ``schema``

    Raises:
        XmlParseError: when the XML cannot be parsed, even after repairs
    """
    document = parse_xml_safely(clean_xml_input(xml_text))
    payload = select_best_payload_node(document, schema, spec)

    mapper = SchemaDrivenMapper(spec, max_depth=max_depth)
    result = mapper.map_node(schema, payload, '')
    if prune:
        result = prune_empty_fields(result)

    logger.info(f"Mapped <{payload.name}> with {len(mapper.diagnostics)} diagnostic(s)")
    return MappingResult(result=result, diagnostics=mapper.diagnostics)
