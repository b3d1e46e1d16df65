# generators/example_generator.py
"""
Example payloads generated from OpenAPI schemas
"""
from typing import Any, Dict, Optional

from mapper.schema_resolver import resolve_ref

MAX_EXAMPLE_DEPTH = 10


def generate_example_from_schema(schema: Optional[Dict[str, Any]], spec: Dict[str, Any],
                                 depth: int = 0, max_depth: int = MAX_EXAMPLE_DEPTH) -> Any:
    """
    Example value shaped like ``schema``

    Explicit ``example`` values win; otherwise defaults or empty values per
    type. Recursion stops at ``max_depth`` so ``$ref`` cycles terminate.
    """
    if not schema:
        return {}
    if depth > max_depth:
        return None

    if '$ref' in schema:
        resolved = resolve_ref(spec, schema['$ref'])
        if resolved:
            return generate_example_from_schema(resolved, spec, depth + 1, max_depth)
        return {}

    if 'example' in schema:
        return schema['example']

    schema_type = schema.get('type')
    if schema_type == 'object' or (schema_type is None and 'properties' in schema):
        example = {}
        for key, prop in (schema.get('properties') or {}).items():
            value = generate_example_from_schema(prop, spec, depth + 1, max_depth)
            if value is not None:
                example[key] = value
        return example

    if schema_type == 'array':
        if schema.get('items'):
            item = generate_example_from_schema(schema['items'], spec, depth + 1, max_depth)
            if item is not None:
                return [item]
        return []

    if schema_type == 'string':
        return schema.get('default') or ''
    if schema_type in ('number', 'integer'):
        return schema.get('default') or 0
    if schema_type == 'boolean':
        return schema['default'] if 'default' in schema else False
    return None
