# generators/curl_generator.py
"""
cURL command rendering for a prepared request
"""
from urllib.parse import quote

from mapper.schemas import Operation, RequestMapping

BODY_METHODS = ('POST', 'PUT', 'PATCH')
LINE_BREAK = ' \\\n    '
URI_SAFE = "!'()*"


def build_request_path(operation: Operation, mapping: RequestMapping) -> str:
    """Operation path with enabled path params substituted and the query string appended"""
    path = operation.path
    for param in mapping.path_params:
        if param.enabled:
            path = path.replace('{' + param.key + '}', param.value)

    query = '&'.join(
        f"{quote(p.key, safe=URI_SAFE)}={quote(p.value, safe=URI_SAFE)}"
        for p in mapping.query_params if p.enabled and p.value
    )
    return f"{path}?{query}" if query else path


def build_curl_command(operation: Operation, mapping: RequestMapping, prune_body: bool = False,
                       host_variable: str = 'ApigeeHost') -> str:
    full_path = build_request_path(operation, mapping)
    headers = LINE_BREAK.join(f'-H "{h.key}: {h.value}"' for h in mapping.headers if h.enabled)

    body_part = ''
    if operation.method in BODY_METHODS:
        body_json = mapping.body(pruned=prune_body)
        if body_json:
            escaped = body_json.replace("'", "'\\''")
            body_part = f"{LINE_BREAK}--data-raw '{escaped}'"

    curl = f'curl -X {operation.method} "{{{{{host_variable}}}}}{full_path}"'
    if headers:
        curl += LINE_BREAK + headers
    curl += body_part
    return f"# {full_path}\n{curl}"
