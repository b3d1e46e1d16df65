# generators/postman_generator.py
"""
Postman v2.1 collection built from an OpenAPI document
"""
import json
import re
import logging
from typing import Any, Dict, List, Optional

from generators.example_generator import generate_example_from_schema
from utils.settings import ToolboxSettings

logger = logging.getLogger(__name__)

POSTMAN_SCHEMA_URL = 'https://schema.getpostman.com/json/collection/v2.1.0/collection.json'
COLLECTION_METHODS = ('get', 'post', 'put', 'delete', 'patch', 'head', 'options')
BODY_METHODS = ('POST', 'PUT', 'PATCH')

AUTH_SCRIPT = """
const key = pm.environment.get("key") || "";
const secret = pm.environment.get("secret") || "";
const tokenIssuedAt = pm.environment.get("tokenIssuedAt");
const tokenExpiresIn = pm.environment.get("tokenExpiresIn");
const now = Date.now();

// Renew when less than 5 minutes are left
const shouldRenew = !tokenIssuedAt || !tokenExpiresIn ||
    (now - parseInt(tokenIssuedAt)) > (parseInt(tokenExpiresIn) - 300) * 1000;

const storeToken = (res, url) => {
    const body = res.json();
    pm.environment.set("bearerToken", body.access_token || body.token || "");
    pm.environment.set("tokenIssuedAt", now.toString());
    pm.environment.set("tokenExpiresIn", (body.expires_in || 3600).toString());
    pm.environment.set("tokenAuthEndpoint", url);
};

if (shouldRenew && key && secret) {
    const authRequest = {
        url: pm.variables.get("{host}") + "/authentication/v2",
        method: 'POST',
        header: { 'Content-Type': 'application/json' },
        body: { mode: 'raw', raw: JSON.stringify({ key, secret }) }
    };

    pm.sendRequest(authRequest, (err, res) => {
        if (err || res.code !== 200) {
            authRequest.url = pm.variables.get("{host}") + "/common/authentication/v1";
            pm.sendRequest(authRequest, (err2, res2) => {
                if (!err2 && res2.code === 200) storeToken(res2, authRequest.url);
            });
        } else {
            storeToken(res, authRequest.url);
        }
    });
}
"""


def _param_value(param: Optional[Dict[str, Any]]) -> str:
    if not param:
        return ''
    value = param.get('example')
    if value in (None, ''):
        value = param.get('default')
    return '' if value is None else str(value)


def json_body_example(operation: Dict[str, Any], spec: Dict[str, Any]) -> Optional[Any]:
    """Example JSON body of an operation: media example first, then schema-generated"""
    content = ((operation.get('requestBody') or {}).get('content') or {}).get('application/json')
    if not content:
        return None
    example = content.get('example')
    if example:
        return json.loads(example) if isinstance(example, str) else example
    if content.get('schema'):
        return generate_example_from_schema(content['schema'], spec)
    return {}


def _build_item(path: str, method: str, operation: Dict[str, Any], spec: Dict[str, Any],
                settings: ToolboxSettings) -> Dict[str, Any]:
    parameters = operation.get('parameters') or []
    item = {
        'name': operation.get('operationId') or f"{method} {path}",
        'request': {
            'method': method,
            'header': settings.default_headers(include_authorization=True),
            'url': {
                'raw': f"{settings.host_placeholder}{path}",
                'host': [settings.host_placeholder],
                'path': [segment for segment in path.split('/') if segment]
            },
            'description': operation.get('description') or operation.get('summary') or ''
        },
        'response': []
    }

    query = [
        {'key': p['name'], 'value': _param_value(p), 'description': p.get('description') or ''}
        for p in parameters if p.get('in') == 'query'
    ]
    if query:
        item['request']['url']['query'] = query

    item['request']['header'].extend(
        {'key': p['name'], 'value': _param_value(p), 'description': p.get('description') or ''}
        for p in parameters if p.get('in') == 'header'
    )

    path_names = re.findall(r'\{([^}]+)\}', path)
    if path_names:
        variables = []
        for name in path_names:
            definition = next((p for p in parameters if p.get('name') == name and p.get('in') == 'path'), None)
            variables.append({
                'key': name,
                'value': _param_value(definition),
                'description': (definition or {}).get('description') or ''
            })
        item['request']['url']['variable'] = variables

    if method in BODY_METHODS:
        body = json_body_example(operation, spec)
        if body is not None:
            item['request']['body'] = {
                'mode': 'raw',
                'raw': json.dumps(body, indent=2, ensure_ascii=False),
                'options': {'raw': {'language': 'json'}}
            }

    item['event'] = [{
        'listen': 'prerequest',
        'script': {
            'type': 'text/javascript',
            'exec': AUTH_SCRIPT.replace('{host}', settings.host_variable).split('\n')
        }
    }]
    return item


def generate_postman_collection(spec: Dict[str, Any], settings: Optional[ToolboxSettings] = None) -> Dict[str, Any]:
    settings = settings or ToolboxSettings()
    items: List[Dict[str, Any]] = []
    for path, path_item in (spec.get('paths') or {}).items():
        if not isinstance(path_item, dict):
            continue
        for method, operation in path_item.items():
            if method.lower() not in COLLECTION_METHODS or not isinstance(operation, dict):
                continue
            items.append(_build_item(path, method.upper(), operation, spec, settings))

    logger.info(f"Generated Postman collection with {len(items)} request(s)")
    return {
        'info': {
            'name': (spec.get('info') or {}).get('title') or 'OpenAPI Collection',
            'schema': POSTMAN_SCHEMA_URL
        },
        'item': items,
        'variable': [
            {'key': settings.host_variable, 'value': '', 'type': 'string'},
            {'key': 'bearerToken', 'value': '', 'type': 'string'}
        ],
        'auth': {
            'type': 'bearer',
            'bearer': [{'key': 'token', 'value': '{{bearerToken}}', 'type': 'string'}]
        }
    }
