# utils/spec_loader.py
"""
Loading helpers for pasted OpenAPI documents (JSON or YAML)
"""
import json
import re
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import yaml

from mapper.schemas import Operation

logger = logging.getLogger(__name__)

HTTP_METHODS = ('get', 'post', 'put', 'delete', 'patch')


class SpecParseError(ValueError):
    """Raised when OpenAPI text is neither valid JSON nor valid YAML"""


def parse_yaml(yaml_text: str) -> Any:
    try:
        return yaml.safe_load(yaml_text)
    except yaml.YAMLError as e:
        raise SpecParseError(f"Invalid YAML: {e}") from e


def fix_yaml(yaml_text: str) -> str:
    """
    Best-effort cleanup of hand-pasted YAML

    Tabs become two spaces, 'key value' lines gain their missing colon,
    non-printable characters are dropped and runs of blank lines collapse.
    """
    lines = []
    for line in yaml_text.replace('\t', '  ').split('\n'):
        if line.strip() and ':' not in line and re.match(r'^\s*\w+\s+\w+', line):
            match = re.match(r'^(\s*)(\w+)\s+(.+)$', line)
            if match:
                line = f"{match.group(1)}{match.group(2)}: {match.group(3)}"
        lines.append(line)
    fixed = '\n'.join(lines)
    fixed = re.sub(r'[^\x20-\x7E\n\r\t]', '', fixed)
    return re.sub(r'\n{3,}', '\n\n', fixed)


def validate_json(text: str) -> Dict[str, Any]:
    try:
        json.loads(text)
        return {'valid': True, 'error': None}
    except ValueError as e:
        return {'valid': False, 'error': str(e)}


def validate_yaml(text: str) -> Dict[str, Any]:
    try:
        yaml.safe_load(text)
        return {'valid': True, 'error': None}
    except yaml.YAMLError as e:
        return {'valid': False, 'error': str(e)}


def load_spec_text(text: str) -> Tuple[Dict[str, Any], str]:
    """
    Parse an OpenAPI document

    Returns:
        Tuple of (document, 'json' or 'yaml')
    """
    if not text or not text.strip():
        raise SpecParseError("The OpenAPI document is empty")

    if validate_json(text)['valid']:
        document, fmt = json.loads(text), 'json'
    else:
        document, fmt = parse_yaml(text), 'yaml'

    if not isinstance(document, dict):
        raise SpecParseError("The OpenAPI document must be a mapping at the top level")
    logger.info(f"Loaded OpenAPI document ({fmt}): {document.get('info', {}).get('title', 'untitled')}")
    return document, fmt


def list_operations(spec: Dict[str, Any], methods=HTTP_METHODS) -> List[Operation]:
    operations = []
    for path, path_item in (spec.get('paths') or {}).items():
        if not isinstance(path_item, dict):
            continue
        for method, definition in path_item.items():
            if method.lower() not in methods or not isinstance(definition, dict):
                continue
            operations.append(Operation(
                path=path,
                method=method.upper(),
                operation_id=definition.get('operationId') or f"{method.upper()} {path}",
                definition=definition
            ))
    return operations


def find_operation(spec: Dict[str, Any], key: str) -> Optional[Operation]:
    """Operation by operationId or 'METHOD /path'"""
    for operation in list_operations(spec):
        if key in (operation.operation_id, f"{operation.method} {operation.path}"):
            return operation
    return None


def sanitize_filename(name: str) -> str:
    return re.sub(r'[^a-z0-9_.]', '_', name, flags=re.IGNORECASE).lower()


def build_timestamp_token(moment: Optional[datetime] = None) -> str:
    """'YYYYMMDD_HHMMSS_mmm' for file names"""
    moment = moment or datetime.now()
    return f"{moment.strftime('%Y%m%d_%H%M%S')}_{moment.microsecond // 1000:03d}"
