# mapper/schema_resolver.py
"""
$ref resolution and type classification for OpenAPI schema nodes
"""
import logging
from typing import Any, Dict, Optional

from mapper.schemas import SchemaType

logger = logging.getLogger(__name__)


def _unescape_pointer_token(token: str) -> str:
    return token.replace('~1', '/').replace('~0', '~')


def resolve_ref(spec: Dict[str, Any], ref: str) -> Optional[Any]:
    """Walk a local JSON pointer ('#/components/schemas/Order') through ``spec``"""
    if not ref or not isinstance(ref, str) or not ref.startswith('#/'):
        return None
    current = spec
    for part in ref[2:].split('/'):
        key = _unescape_pointer_token(part)
        if isinstance(current, dict) and key in current:
            current = current[key]
        elif isinstance(current, list) and key.isdigit() and int(key) < len(current):
            current = current[int(key)]
        else:
            return None
    return current


def resolve_schema(schema: Optional[Dict[str, Any]], spec: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Follow ``$ref`` pointers until a concrete schema is reached

    Returns None for a broken ref or a ref cycle.
    """
    seen = set()
    current = schema
    while isinstance(current, dict) and '$ref' in current:
        ref = current['$ref']
        if ref in seen:
            logger.warning(f"Circular $ref chain detected at {ref}")
            return None
        seen.add(ref)
        current = resolve_ref(spec, ref)
    if not isinstance(current, dict):
        return None
    return current


def broken_ref(schema: Optional[Dict[str, Any]], spec: Dict[str, Any]) -> Optional[str]:
    """The ``$ref`` of ``schema`` when it cannot be resolved, else None"""
    if isinstance(schema, dict) and '$ref' in schema and resolve_schema(schema, spec) is None:
        return schema['$ref']
    return None


def get_schema_type(schema: Optional[Dict[str, Any]], spec: Dict[str, Any]) -> SchemaType:
    resolved = resolve_schema(schema, spec)
    if not resolved:
        return SchemaType.UNKNOWN
    if resolved.get('type'):
        return SchemaType.from_value(resolved['type'])
    if resolved.get('properties'):
        return SchemaType.OBJECT
    if resolved.get('items'):
        return SchemaType.ARRAY
    return SchemaType.UNKNOWN


def get_schema_properties(schema: Optional[Dict[str, Any]], spec: Dict[str, Any]) -> Dict[str, Any]:
    resolved = resolve_schema(schema, spec)
    if not resolved or not resolved.get('properties'):
        return {}
    return resolved['properties']


def get_schema_items(schema: Optional[Dict[str, Any]], spec: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    resolved = resolve_schema(schema, spec)
    if not resolved or not resolved.get('items'):
        return None
    return resolved['items']


def get_xml_hints(schema: Optional[Dict[str, Any]], spec: Dict[str, Any]) -> Dict[str, Any]:
    """The ``xml`` object of a schema (name, attribute, wrapped...), or an empty dict"""
    resolved = resolve_schema(schema, spec)
    if not resolved or not isinstance(resolved.get('xml'), dict):
        return {}
    return resolved['xml']
