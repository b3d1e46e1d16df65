# test_pipeline.py
"""
End-to-end tests for the request builder pipeline and CLI
"""
import json

import pytest

import main
from loaders.dataset_loader import parse_catalog_csv
from main import RequestBuilderPipeline
from utils.settings import ToolboxSettings

SPEC_TEXT = json.dumps({
    'openapi': '3.0.1',
    'info': {'title': 'Orders API'},
    'paths': {
        '/orders/{orderId}': {
            'post': {
                'operationId': 'createOrder',
                'parameters': [
                    {'name': 'orderId', 'in': 'path', 'required': True, 'schema': {'type': 'string'}}
                ],
                'requestBody': {
                    'content': {'application/json': {'schema': {'$ref': '#/components/schemas/Order'}}}
                }
            }
        },
        '/orders': {
            'get': {'operationId': 'listOrders'}
        }
    },
    'components': {
        'schemas': {
            'Order': {
                'type': 'object',
                'properties': {
                    'reference': {'type': 'string'},
                    'quantity': {'type': 'integer'},
                    'note': {'type': 'string'}
                }
            }
        }
    }
})

ORDER_XML = """<Envelope><Body><CreateOrder orderId="O-1">
<reference>R9</reference><quantity>3</quantity>
</CreateOrder></Body></Envelope>"""


@pytest.fixture
def pipeline():
    return RequestBuilderPipeline(SPEC_TEXT, ToolboxSettings())


def test_pipeline_loads_document(pipeline):
    assert pipeline.spec_format == 'json'
    assert [i for i in pipeline.issues if i['severity'] == 'error'] == []


def test_pipeline_run(pipeline):
    mapping, curl = pipeline.run('createOrder', ORDER_XML)

    assert mapping.path_params[0].value == 'O-1'
    assert json.loads(mapping.body_full) == {'reference': 'R9', 'quantity': 3, 'note': ''}
    assert curl.split('\n')[0] == '# /orders/O-1'

    _, pruned_curl = pipeline.run('POST /orders/{orderId}', ORDER_XML, prune_body=True)
    assert '"note"' not in pruned_curl


def test_pipeline_run_rejects_unknown_operation(pipeline):
    with pytest.raises(ValueError):
        pipeline.run('deleteOrder', ORDER_XML)
    with pytest.raises(TypeError):
        pipeline.run('createOrder', None)


def test_pipeline_map_payload(pipeline):
    schema = {'$ref': '#/components/schemas/Order'}
    result = pipeline.map_payload(ORDER_XML, schema, prune=True)
    assert result.result == {'reference': 'R9', 'quantity': 3}
    assert not result.has_errors


def test_pipeline_export_postman(pipeline, tmp_path):
    output_file = pipeline.export_postman(str(tmp_path))

    assert output_file.endswith('.postman_collection.json')
    assert 'orders_api_' in output_file
    with open(output_file, encoding='utf-8') as f:
        collection = json.load(f)
    assert len(collection['item']) == 2


def test_cli_operations(tmp_path, capsys, monkeypatch):
    monkeypatch.setenv('LOG_FILE', str(tmp_path / 'toolbox.log'))
    monkeypatch.setenv('LOG_LEVEL', 'WARNING')
    spec_file = tmp_path / 'orders.json'
    spec_file.write_text(SPEC_TEXT, encoding='utf-8')

    assert main.main([str(spec_file), 'operations']) == 0
    out = capsys.readouterr().out
    assert 'createOrder' in out
    assert 'listOrders' in out


def test_cli_curl(tmp_path, capsys, monkeypatch):
    monkeypatch.setenv('LOG_FILE', str(tmp_path / 'toolbox.log'))
    monkeypatch.setenv('LOG_LEVEL', 'WARNING')
    spec_file = tmp_path / 'orders.json'
    spec_file.write_text(SPEC_TEXT, encoding='utf-8')
    xml_file = tmp_path / 'order.xml'
    xml_file.write_text(ORDER_XML, encoding='utf-8')

    assert main.main([str(spec_file), 'curl', 'createOrder', str(xml_file), '--prune']) == 0
    out = capsys.readouterr().out
    assert 'curl -X POST "{{ApigeeHost}}/orders/O-1"' in out


ORDER_CATALOG = """METHOD;PATH;VERSION;TARGET PATH;TARGET SERVICE;STATUS
POST;/orders/{orderId};v1;/soa/sales/order/OrderCapture;Order Capture;available
"""

ORDER_LOG = """<soapenv:Envelope xmlns:soapenv="http://schemas.xmlsoap.org/soap/envelope/" xmlns:ord="http://x/soa/sales/order/OrderCapture">
<soapenv:Body><ord:Order/></soapenv:Body></soapenv:Envelope>"""


def test_pipeline_suggest(pipeline):
    suggestion = pipeline.suggest(ORDER_LOG, parse_catalog_csv(ORDER_CATALOG))
    assert suggestion.status == 'matched'
    assert suggestion.best.operation.operation_id == 'createOrder'
    assert suggestion.confidence == 88
    assert [c.operation.operation_id for c in suggestion.alternatives] == ['listOrders']


def test_cli_suggest(tmp_path, capsys, monkeypatch):
    monkeypatch.setenv('LOG_FILE', str(tmp_path / 'toolbox.log'))
    monkeypatch.setenv('LOG_LEVEL', 'WARNING')
    spec_file = tmp_path / 'orders.json'
    spec_file.write_text(SPEC_TEXT, encoding='utf-8')
    log_file = tmp_path / 'order.log'
    log_file.write_text(ORDER_LOG, encoding='utf-8')
    catalog_file = tmp_path / 'catalog.csv'
    catalog_file.write_text(ORDER_CATALOG, encoding='utf-8')

    assert main.main([str(spec_file), 'suggest', str(log_file), '--catalog', str(catalog_file)]) == 0
    out = capsys.readouterr().out
    assert out.startswith('matched 88%  POST /orders/{orderId}')
    assert 'Namespace matches the backend target path' in out

    catalog_file.write_text('METHOD;PATH\n', encoding='utf-8')
    assert main.main([str(spec_file), 'suggest', str(log_file), '--catalog', str(catalog_file)]) == 1
