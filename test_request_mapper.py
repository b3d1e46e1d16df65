# test_request_mapper.py
"""
Tests for request preparation and cURL rendering
"""
import json

from generators.curl_generator import build_curl_command, build_request_path
from mapper.request_mapper import (
    add_or_merge_header,
    extract_canonical_header_values_from_xml,
    extract_headers_from_xml_log,
    extract_name_value_pairs,
    extract_param_value_from_xml,
    normalize_key,
    prepare_request_mapping,
)
from mapper.schemas import HeaderEntry, Operation, RequestMapping, RequestParam
from utils.settings import ToolboxSettings
from utils.spec_loader import find_operation

SPEC = {
    'openapi': '3.0.1',
    'info': {'title': 'Customer API'},
    'paths': {
        '/customers/{customerId}/contacts': {
            'post': {
                'operationId': 'createContact',
                'parameters': [
                    {'name': 'customerId', 'in': 'path', 'required': True, 'schema': {'type': 'string'}},
                    {'name': 'channel', 'in': 'query', 'example': 'web'},
                    {'name': 'lang', 'in': 'query', 'default': 'pt'},
                    {'name': 'X-Correlation-ID', 'in': 'header', 'required': True, 'example': 'abc'},
                    {'name': 'X-Legacy', 'in': 'header', 'required': True, 'deprecated': True}
                ],
                'requestBody': {
                    'content': {'application/json': {'schema': {'$ref': '#/components/schemas/Contact'}}}
                }
            }
        },
        '/notes': {
            'put': {
                'operationId': 'putNote',
                'requestBody': {
                    'content': {'application/json': {'example': '{"text": "hello"}'}}
                }
            }
        }
    },
    'components': {
        'schemas': {
            'Contact': {
                'type': 'object',
                'properties': {
                    'phone': {'type': 'string'},
                    'email': {'type': 'string'},
                    'primary': {'type': 'boolean'}
                }
            }
        }
    }
}

SOAP_LOG = """<soapenv:Envelope xmlns:soapenv="http://schemas.xmlsoap.org/soap/envelope/" xmlns:ns="urn:crm">
<soapenv:Header><ns:process>Onboarding</ns:process><ns:eTrackingID>T-77</ns:eTrackingID><ns:sessionId>S-1</ns:sessionId></soapenv:Header>
<soapenv:Body><ns:CreateContact customerId="C-42"><ns:channel>app</ns:channel><ns:phone>912345678</ns:phone><ns:email></ns:email><ns:primary>true</ns:primary></ns:CreateContact></soapenv:Body>
</soapenv:Envelope>"""


def _header(mapping, key):
    return next(h for h in mapping.headers if h.key == key)


def test_normalize_key():
    assert normalize_key('X-eTracking_ID') == 'xetrackingid'
    assert normalize_key(None) == ''


def test_add_or_merge_header():
    headers = [HeaderEntry(key='X-User', value='', enabled=False)]
    add_or_merge_header(headers, HeaderEntry(key='x_user', value='u1', description='d', removable=True))
    assert len(headers) == 1
    assert headers[0].key == 'X-User'
    assert headers[0].value == 'u1'
    assert headers[0].enabled is True
    assert headers[0].description == 'd'
    assert headers[0].removable is True

    add_or_merge_header(headers, HeaderEntry(key='X-User', value='other'))
    assert headers[0].value == 'u1'


def test_name_value_pairs():
    xml = '<p><name>color</name><value>red</value></p><p><ns:name>size</ns:name><ns:value>L</ns:value></p>'
    assert extract_name_value_pairs(xml) == {'color': 'red', 'size': 'L'}


def test_headers_from_xml_log():
    headers = extract_headers_from_xml_log(SOAP_LOG)
    assert headers == [
        {'key': 'process', 'value': 'Onboarding'},
        {'key': 'eTrackingID', 'value': 'T-77'},
        {'key': 'sessionId', 'value': 'S-1'}
    ]
    assert extract_headers_from_xml_log('') == []


def test_canonical_header_values():
    assert extract_canonical_header_values_from_xml(SOAP_LOG) == {
        'X-process': 'Onboarding',
        'X-eTrackingID': 'T-77'
    }


def test_param_value_prefers_body_scope():
    xml = ('<Envelope><Header><id>H</id></Header>'
           '<Body><Req><id>B</id></Req></Body></Envelope>')
    assert extract_param_value_from_xml(xml, 'id') == 'B'


def test_param_value_from_name_value_pair():
    xml = '<Envelope><Body><Req><param><name>contractId</name><value>K-1</value></param></Req></Body></Envelope>'
    assert extract_param_value_from_xml(xml, 'contract_id') == 'K-1'


def test_param_value_regex_fallback_for_broken_xml():
    assert extract_param_value_from_xml('<Req customerId="C-9"><x>', 'customerId') == 'C-9'
    assert extract_param_value_from_xml('<Req><x>', 'missing') == ''


def test_prepare_request_mapping_from_soap_log():
    operation = find_operation(SPEC, 'createContact')
    mapping = prepare_request_mapping(SPEC, operation, SOAP_LOG, ToolboxSettings())

    assert [(p.key, p.value) for p in mapping.path_params] == [('customerId', 'C-42')]
    assert [(p.key, p.value) for p in mapping.query_params] == [('channel', 'app'), ('lang', 'pt')]

    keys = [h.key for h in mapping.headers]
    assert keys[0] == 'X-Correlation-ID'
    assert 'X-Legacy' not in keys
    assert _header(mapping, 'X-Correlation-ID').locked is True
    assert _header(mapping, 'X-process').value == 'Onboarding'
    assert _header(mapping, 'X-eTrackingID').value == 'T-77'
    assert _header(mapping, 'X-eTrackingID').description.startswith('[XML]')
    assert _header(mapping, 'sessionId').enabled is False

    assert json.loads(mapping.body_full) == {'phone': '912345678', 'email': '', 'primary': True}
    assert json.loads(mapping.body_pruned) == {'phone': '912345678', 'primary': True}
    assert mapping.diagnostics == []


def test_prepare_request_mapping_unwraps_log_record():
    operation = find_operation(SPEC, 'createContact')
    record = f'<record><level>INFO</level><message>{SOAP_LOG}</message></record>'
    mapping = prepare_request_mapping(SPEC, operation, record, ToolboxSettings())

    assert json.loads(mapping.body_full) == {'phone': '912345678', 'email': '', 'primary': True}
    assert [(p.key, p.value) for p in mapping.path_params] == [('customerId', 'C-42')]


def test_prepare_request_mapping_keeps_example_on_parse_error():
    operation = find_operation(SPEC, 'createContact')
    mapping = prepare_request_mapping(SPEC, operation, '<Root><phone>1</phone>', ToolboxSettings())

    assert json.loads(mapping.body_full) == {'phone': '', 'email': '', 'primary': False}
    assert json.loads(mapping.body_pruned) == {'primary': False}
    assert mapping.diagnostics[0].severity == 'error'


def test_prepare_request_mapping_uses_media_example():
    operation = find_operation(SPEC, 'putNote')
    mapping = prepare_request_mapping(SPEC, operation, '<Note><text>ignored</text></Note>')
    assert json.loads(mapping.body_full) == {'text': 'hello'}


def test_curl_command():
    operation = find_operation(SPEC, 'createContact')
    mapping = prepare_request_mapping(SPEC, operation, SOAP_LOG, ToolboxSettings())
    curl = build_curl_command(operation, mapping, prune_body=True)

    lines = curl.split('\n')
    assert lines[0] == '# /customers/C-42/contacts?channel=app&lang=pt'
    assert lines[1] == 'curl -X POST "{{ApigeeHost}}/customers/C-42/contacts?channel=app&lang=pt" \\'
    assert '    -H "X-process: Onboarding" \\' in lines
    assert 'sessionId' not in curl
    assert "--data-raw '{" in curl
    assert '"email"' not in curl


def test_curl_escapes_quotes_and_encodes_query():
    operation = Operation(path='/search/{id}', method='PUT', operation_id='search')
    mapping = RequestMapping(
        path_params=[RequestParam(key='id', value='7')],
        query_params=[RequestParam(key='q', value='a b&c'), RequestParam(key='empty', value='')],
        body_full='{"name": "O\'Brien"}'
    )
    assert build_request_path(operation, mapping) == '/search/7?q=a%20b%26c'
    curl = build_curl_command(operation, mapping, host_variable='Host')
    assert '"{{Host}}/search/7?q=a%20b%26c"' in curl
    assert curl.endswith("--data-raw '{\"name\": \"O'\\''Brien\"}'")


def test_curl_get_has_no_body():
    operation = Operation(path='/items', method='GET', operation_id='items')
    mapping = RequestMapping(headers=[HeaderEntry(key='Accept', value='application/json')], body_full='{}')
    assert build_curl_command(operation, mapping) == (
        '# /items\ncurl -X GET "{{ApigeeHost}}/items" \\\n    -H "Accept: application/json"'
    )
