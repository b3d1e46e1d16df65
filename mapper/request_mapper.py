# mapper/request_mapper.py
"""
Request preparation: turns an operation plus an XML sample into path/query
parameters, headers and a JSON body ready for cURL or review
"""
import json
import re
import logging
from typing import Any, Dict, List, Optional

from extractors.xml_navigator import find_child_by_local_name, repair_mojibake
from extractors.xml_parser import XmlElement, XmlParseError, parse_xml_safely, unwrap_log_message
from generators.example_generator import generate_example_from_schema
from mapper.pruner import prune_empty_fields
from mapper.schema_mapper import map_xml_to_json
from mapper.schemas import HeaderEntry, MappingDiagnostic, Operation, RequestMapping, RequestParam
from utils.settings import ToolboxSettings

logger = logging.getLogger(__name__)

XML_HEADER_CANONICAL_MAP = {
    'process': 'X-process',
    'etrackingid': 'X-eTrackingID',
    'application': 'X-application'
}

XML_MAPPED_TAG = '[XML] Value mapped from the log'
XML_DETECTED_TAG = '[XML] Header found in the log'
REQUIRED_TAG = '[REQUIRED]'

_NAME_VALUE_PAIR = re.compile(
    r'<[^>]*:?name[^>]*>\s*([^<]+?)\s*</[^>]+>\s*<[^>]*:?value[^>]*>\s*([^<]*?)\s*</[^>]+>',
    re.IGNORECASE
)
_SOAP_HEADER = re.compile(r'<(?:\w+:)?Header\b[\s\S]*?</(?:\w+:)?Header>', re.IGNORECASE)
_SOAP_BODY = re.compile(r'<(?:\w+:)?Body\b[\s\S]*?</(?:\w+:)?Body>', re.IGNORECASE)


def normalize_key(value) -> str:
    """Lowercase alphanumerics only, used to compare header and field names"""
    return re.sub(r'[^a-z0-9]', '', str(value or '').lower())


def _strip_backticks(xml_raw: str) -> str:
    return re.sub(r'\s*`', '', re.sub(r'`\s*', '', str(xml_raw or '')))


def _param_default(param: Optional[Dict[str, Any]]) -> str:
    if not param:
        return ''
    value = param.get('example') or param.get('default') or ''
    return str(value)


def find_header_index(headers: List[HeaderEntry], key: str) -> int:
    normalized = normalize_key(key)
    for index, header in enumerate(headers):
        if normalize_key(header.key) == normalized:
            return index
    return -1


def add_or_merge_header(headers: List[HeaderEntry], entry: HeaderEntry):
    """
    Append ``entry`` or merge it into the header with the same normalized key

    On merge the header stays enabled if either side is, an empty value or
    description is filled from the incoming entry, and removable/locked are
    only set when still undecided.
    """
    index = find_header_index(headers, entry.key)
    if index == -1:
        headers.append(entry.model_copy())
        return

    existing = headers[index]
    merged = existing.model_copy()
    merged.enabled = existing.enabled or entry.enabled
    if not existing.value.strip() and entry.value.strip():
        merged.value = entry.value.strip()
    if not existing.description.strip() and entry.description:
        merged.description = entry.description
    if existing.removable is None and entry.removable is not None:
        merged.removable = entry.removable
    if existing.locked is None and entry.locked is not None:
        merged.locked = entry.locked
    headers[index] = merged


def _tag_description(header: HeaderEntry, tag: str):
    if tag not in header.description:
        header.description = f"{tag} {header.description}" if header.description else tag


def extract_name_value_pairs(xml_content: str) -> Dict[str, str]:
    """``{name: value}`` for every adjacent <name>/<value> element pair in raw XML text"""
    pairs = {}
    for match in _NAME_VALUE_PAIR.finditer(xml_content or ''):
        name = repair_mojibake(match.group(1).strip())
        if name:
            pairs[name] = repair_mojibake(match.group(2).strip())
    return pairs


def extract_headers_from_xml_log(xml_raw: str) -> List[Dict[str, str]]:
    """
    Header candidates found in an XML log

    Leaf children of the first element whose name contains 'header', then
    name/value pairs anywhere in the text; first occurrence per key wins.
    """
    if not xml_raw or not xml_raw.strip():
        return []
    cleaned = _strip_backticks(xml_raw)
    headers = []

    try:
        document = parse_xml_safely(cleaned)
    except XmlParseError as e:
        logger.debug(f"Header scan skipped the element tree: {e}")
        document = None

    if document is not None:
        header_node = next((el for el in document.iter() if 'header' in normalize_key(el.local_name)), None)
        if header_node is not None:
            for node in header_node.element_children:
                key = repair_mojibake(node.local_name)
                value = repair_mojibake(node.text_content.strip())
                if key and not node.has_element_children and value:
                    headers.append({'key': key, 'value': value})

    for key, value in extract_name_value_pairs(cleaned).items():
        if key and value is not None and str(value).strip():
            headers.append({'key': key, 'value': value})

    unique = []
    seen = set()
    for header in headers:
        normalized = normalize_key(header['key'])
        if normalized not in seen:
            seen.add(normalized)
            unique.append(header)
    return unique


def canonical_header_key(raw_key: str) -> str:
    return XML_HEADER_CANONICAL_MAP.get(normalize_key(raw_key), raw_key)


def is_promoted_xml_header(raw_key: str) -> bool:
    return normalize_key(raw_key) in XML_HEADER_CANONICAL_MAP


def _tag_value(source: str, tag_name: str) -> str:
    safe_tag = re.escape(tag_name)
    pattern = re.compile(rf'<(?:\w+:)?{safe_tag}\b[^>]*>\s*([^<]+?)\s*</(?:\w+:)?{safe_tag}>', re.IGNORECASE)

    header_match = _SOAP_HEADER.search(source)
    if header_match:
        match = pattern.search(header_match.group(0))
        if match:
            return repair_mojibake(match.group(1).strip())
    match = pattern.search(source)
    return repair_mojibake(match.group(1).strip()) if match else ''


def extract_canonical_header_values_from_xml(xml_raw: str) -> Dict[str, str]:
    """Values for X-application, X-process and X-eTrackingID read from their log fields"""
    if not xml_raw or not str(xml_raw).strip():
        return {}
    source = _strip_backticks(xml_raw)
    values = {}
    for tag_name in ('application', 'process', 'eTrackingID'):
        value = _tag_value(source, tag_name)
        if value:
            values[XML_HEADER_CANONICAL_MAP[normalize_key(tag_name)]] = value
    return values


def find_xml_field_value_in_scope(scope_root: Optional[XmlElement], target_field_norm: str) -> str:
    """
    Breadth-first search under ``scope_root`` for a field value

    Per node: an attribute named like the field, then a <name>/<value> pair
    naming it, then the node itself when it is a leaf named like the field.
    """
    if scope_root is None or not target_field_norm:
        return ''
    queue = [scope_root]

    while queue:
        node = queue.pop(0)

        for attr_name, attr_value in node.attributes:
            if normalize_key(attr_name.split(':')[-1]) != target_field_norm:
                continue
            value = repair_mojibake((attr_value or '').strip())
            if value:
                return value

        name_node = find_child_by_local_name(node, 'name')
        value_node = find_child_by_local_name(node, 'value')
        if name_node is not None and value_node is not None:
            pair_name = normalize_key(repair_mojibake(name_node.text_content.strip()))
            if pair_name == target_field_norm:
                pair_value = repair_mojibake(value_node.text_content.strip())
                if pair_value:
                    return pair_value

        if normalize_key(node.local_name) == target_field_norm and not node.has_element_children:
            text_value = repair_mojibake(node.text_content.strip())
            if text_value:
                return text_value

        queue.extend(node.element_children)

    return ''


def _regex_field_value(cleaned: str, field_name: str) -> str:
    safe_field = re.escape(field_name)
    attribute = re.compile(rf'\b{safe_field}\s*=\s*"(.*?)"', re.IGNORECASE)
    element = re.compile(rf'<(?:\w+:)?{safe_field}\b[^>]*>\s*([^<]+?)\s*</(?:\w+:)?{safe_field}>', re.IGNORECASE)

    scopes = []
    body_match = _SOAP_BODY.search(cleaned)
    if body_match:
        scopes.append(body_match.group(0))
    scopes.append(cleaned)

    for scope in scopes:
        for pattern in (attribute, element):
            match = pattern.search(scope)
            if match:
                value = repair_mojibake(match.group(1).strip())
                if value:
                    return value
    return ''


def extract_param_value_from_xml(xml_raw: str, field_name: str) -> str:
    """
    Value for a request parameter taken from an XML sample

    The SOAP Body payload is searched first so header metadata does not win
    over business fields; then the whole document, then regex fallbacks for
    XML that does not parse. Returns '' when nothing is found.
    """
    if not xml_raw or not field_name:
        return ''
    target = normalize_key(field_name)
    if not target:
        return ''
    cleaned = _strip_backticks(xml_raw)

    try:
        document = parse_xml_safely(cleaned)
    except XmlParseError as e:
        logger.debug(f"Parameter '{field_name}' falls back to text search: {e}")
        document = None

    if document is not None:
        body_node = next((el for el in document.iter() if normalize_key(el.local_name) == 'body'), None)
        if body_node is not None:
            for scope in body_node.element_children or [body_node]:
                value = find_xml_field_value_in_scope(scope, target)
                if value:
                    return value
        value = find_xml_field_value_in_scope(document, target)
        if value:
            return value

    value = _regex_field_value(cleaned, field_name)
    if value:
        return value

    for key, pair_value in extract_name_value_pairs(cleaned).items():
        if normalize_key(key) == target and pair_value.strip():
            return repair_mojibake(pair_value.strip())
    return ''


def _build_headers(operation: Operation, xml_text: str, settings: ToolboxSettings) -> List[HeaderEntry]:
    headers: List[HeaderEntry] = []

    for param in operation.parameters:
        if param.get('in') != 'header' or not param.get('required') or param.get('deprecated'):
            continue
        add_or_merge_header(headers, HeaderEntry(
            key=param['name'],
            value=_param_default(param),
            description=f"{REQUIRED_TAG} {param.get('description') or ''}".strip(),
            source='yaml-required',
            removable=False,
            locked=True
        ))

    for default in settings.default_headers():
        add_or_merge_header(headers, HeaderEntry(
            key=default['key'], value=default['value'], source='default', removable=True, locked=False
        ))

    for found in extract_headers_from_xml_log(xml_text):
        key = canonical_header_key(found['key'])
        value = str(found['value'] or '').strip()
        index = find_header_index(headers, key)
        if is_promoted_xml_header(found['key']) and index >= 0:
            if value:
                headers[index].value = value
            _tag_description(headers[index], XML_MAPPED_TAG)
            continue
        add_or_merge_header(headers, HeaderEntry(
            key=key, value=value, enabled=False, description=XML_DETECTED_TAG,
            source='xml', removable=True, locked=False
        ))

    for key, value in extract_canonical_header_values_from_xml(xml_text).items():
        index = find_header_index(headers, key)
        if index < 0:
            add_or_merge_header(headers, HeaderEntry(
                key=key, value=value, description=XML_MAPPED_TAG, source='xml', removable=True, locked=False
            ))
            continue
        headers[index].value = value
        _tag_description(headers[index], XML_MAPPED_TAG)

    return headers


def _build_body(spec: Dict[str, Any], operation: Operation, xml_text: str,
                settings: ToolboxSettings, diagnostics: List[MappingDiagnostic]) -> Optional[Any]:
    request_body = operation.definition.get('requestBody')
    if not operation.has_body or not request_body:
        return None
    content = (request_body.get('content') or {}).get('application/json')
    if not content:
        return None

    body_schema = None
    if content.get('example'):
        example = content['example']
        body = json.loads(example) if isinstance(example, str) else example
    elif content.get('schema'):
        body_schema = content['schema']
        body = generate_example_from_schema(body_schema, spec)
    else:
        body = {}

    if xml_text and xml_text.strip() and body_schema:
        try:
            payload_xml = unwrap_log_message(_strip_backticks(xml_text))
            mapped = map_xml_to_json(payload_xml, body_schema, spec, max_depth=settings.mapping_max_depth)
        except XmlParseError as e:
            logger.error(f"XML mapping failed for {operation.operation_id}, keeping example body: {e}")
            diagnostics.append(MappingDiagnostic(message=str(e), severity='error'))
        else:
            diagnostics.extend(mapped.diagnostics)
            if mapped.result is not None:
                body = mapped.result
    return body


def prepare_request_mapping(spec: Dict[str, Any], operation: Operation, xml_text: str,
                            settings: Optional[ToolboxSettings] = None) -> RequestMapping:
    """
    Build the editable request for ``operation`` from an XML sample

    Path and query parameters take XML values over examples/defaults; headers
    are required-first, then defaults, then what the log reveals; the body is
    the schema mapping of the XML (full and pruned renderings).
    """
    settings = settings or ToolboxSettings()
    xml_text = xml_text or ''
    mapping = RequestMapping()

    for name in re.findall(r'\{([^}]+)\}', operation.path):
        definition = next(
            (p for p in operation.parameters if p.get('name') == name and p.get('in') == 'path'), None
        )
        value = extract_param_value_from_xml(xml_text, name)
        mapping.path_params.append(RequestParam(key=name, value=value or _param_default(definition)))

    for param in operation.parameters:
        if param.get('in') != 'query':
            continue
        value = extract_param_value_from_xml(xml_text, param['name']) or _param_default(param)
        mapping.query_params.append(RequestParam(
            key=param['name'], value=value, description=param.get('description') or ''
        ))

    mapping.headers = _build_headers(operation, xml_text, settings)

    body = _build_body(spec, operation, xml_text, settings, mapping.diagnostics)
    if body is not None:
        mapping.body_full = json.dumps(body, indent=2, ensure_ascii=False)
        pruned = prune_empty_fields(body)
        mapping.body_pruned = json.dumps(pruned, indent=2, ensure_ascii=False) if pruned is not None else '{}'

    logger.info(
        f"Prepared {operation.method} {operation.path}: {len(mapping.path_params)} path, "
        f"{len(mapping.query_params)} query, {len(mapping.headers)} header(s)"
    )
    return mapping
