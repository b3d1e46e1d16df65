# test_operation_suggester.py
"""
Tests for guessing the operation of an XML log from the API catalog
"""
import pytest

from loaders.dataset_loader import parse_catalog_csv
from mapper.operation_suggester import (
    extract_domain_service,
    extract_target_service_from_log,
    extract_version,
    filter_operations,
    parse_signals_from_log,
    path_match_score,
    score_candidate,
    suggest_operation,
    version_number,
)
from mapper.schemas import LogSignals, Operation
from mapper.similarity_engine import jaccard_similarity

CATALOG_CSV = """METHOD;PATH;VERSION;TARGET NAME;TARGET PATH;TARGET SERVICE;STATUS;NAME;PLATFORM
POST;/crm/v2/customers;v2;CRM;/soa/crm/customer/CustomerManagement;Customer Management;available;crm-proxy;apigee-x
POST;/crm/v1/customers;v1;CRM;/soa/crm/customer/CustomerManagement;Customer Management;available;crm-proxy;apigee-x
GET;/billing/v1/invoices;v1;Billing;/soa/billing/invoice/InvoiceQuery;Invoice Query;available;bill-proxy;apigee-hybrid
DELETE;/crm/v2/customers/{id};v2;CRM;/soa/crm/customer/CustomerManagement;Customer Management;deprecated;crm-proxy;apigee-x
"""

CUSTOMER_LOG = """<soapenv:Envelope xmlns:soapenv="http://schemas.xmlsoap.org/soap/envelope/" xmlns:cus="http://example.com/soa/crm/customer/CustomerManagement">
<soapenv:Header><param><name>TARGET_SERVICE</name><value>Customer Management</value></param><param><name>process</name><value>createCustomer</value></param></soapenv:Header>
<soapenv:Body><cus:createCustomer><cus:Customer><cus:name>Ana</cus:name></cus:Customer></cus:createCustomer></soapenv:Body>
</soapenv:Envelope>"""

CREATE_V2 = Operation(path='/crm/v2/customers', method='POST', operation_id='createCustomer',
                      definition={'operationId': 'createCustomer', 'tags': ['Customer']})
CREATE_V1 = Operation(path='/crm/v1/customers', method='POST', operation_id='createCustomerV1',
                      definition={'operationId': 'createCustomerV1'})
SEARCH_INVOICES = Operation(path='/billing/v1/invoices', method='GET', operation_id='searchInvoices',
                            definition={'operationId': 'searchInvoices'})
DELETE_CUSTOMER = Operation(path='/crm/v2/customers/{id}', method='DELETE', operation_id='deleteCustomer',
                            definition={'operationId': 'deleteCustomer'})
OPERATIONS = [CREATE_V2, CREATE_V1, SEARCH_INVOICES, DELETE_CUSTOMER]


@pytest.fixture
def catalog():
    return parse_catalog_csv(CATALOG_CSV)


def test_extract_domain_service():
    assert extract_domain_service('urn:acme:crm/customer/data') == {
        'domain': 'crm', 'service': 'customer', 'namespace': 'urn:acme:crm/customer/data'
    }
    assert extract_domain_service('http://x/services/crm/Accounts')['service'] == 'Accounts'
    backend = extract_domain_service('http://x/backend/Billing')
    assert (backend['domain'], backend['service']) == ('', 'Billing')
    assert extract_domain_service('') == {'domain': '', 'service': '', 'namespace': ''}


def test_extract_target_service_from_log():
    assert extract_target_service_from_log(CUSTOMER_LOG) == 'Customer Management'
    assert extract_target_service_from_log('<x><targetService>Billing Core</targetService></x>') == 'Billing Core'
    assert extract_target_service_from_log('INFO Target Service: Orders API\n<x/>') == 'Orders API'
    assert extract_target_service_from_log('<x><a>1</a></x>') == ''


def test_parse_signals_from_log():
    signals = parse_signals_from_log(CUSTOMER_LOG)
    assert signals.protocol == 'soap'
    assert signals.namespace == 'http://example.com/soa/crm/customer/CustomerManagement'
    assert (signals.domain, signals.service) == ('customer', 'CustomerManagement')
    assert signals.target_service == 'Customer Management'
    assert signals.payload_entities == ['Customer']
    assert signals.intents == []
    assert signals.headers == {'process': 'createCustomer'}

    assert parse_signals_from_log('{"a": 1}').protocol == 'rest-json'
    assert parse_signals_from_log('<Order><update/></Order>').intents == ['update']


def test_path_match_score():
    assert path_match_score('/CRM/v1/', '/crm/v1') == 20
    assert path_match_score('/crm/v1/customers/{id}', '/crm/v1/customers/{customerId}') == 16
    assert path_match_score('/crm/v1/customers/*', '/crm/v1/customers/7') == 16
    assert path_match_score('/crm/v1/customers/7', '/crm/v1/customers/{id}') == 14
    assert path_match_score('/crm/v1', '/crm/v1/customers') == 10
    assert path_match_score('/crm/v1/customers/a/b', '/crm/v1/customers/c/d') == 8
    assert path_match_score('/a', '/b') == 0
    assert path_match_score('', '/a') == 0


def test_versions_and_similarity():
    assert extract_version('/crm/v1.2/x') == 'v1.2'
    assert extract_version('/crm/v2') == '-'
    assert version_number('v1.2') == 1.2
    assert version_number('-') == 0
    assert jaccard_similarity('Customer Management', 'customer-management') == 1.0
    assert jaccard_similarity('Customer Management', 'Customer Query') == pytest.approx(1 / 3)
    assert jaccard_similarity('', 'x') == 0.0


def test_score_candidate_details():
    signals = parse_signals_from_log(CUSTOMER_LOG)
    row = {'METHOD': 'POST', 'PATH': '/crm/v2/customers', 'VERSION': 'v2', 'STATUS': 'available',
           'TARGET PATH': '/soa/crm/customer/CustomerManagement', 'TARGET SERVICE': 'Customer Management'}
    scored = score_candidate(CREATE_V2, row, signals, {'POST:/crm/v*/customers': 2.0})

    assert scored.details == {
        'namespace': 50, 'service': 30, 'domain': 15, 'payload': 15, 'verb': 0,
        'path': 20, 'header': 5, 'version': 8, 'method': 8
    }
    assert scored.total == 151
    assert scored.confidence == 97


def test_score_candidate_skips():
    signals = parse_signals_from_log(CUSTOMER_LOG)
    row = {'METHOD': 'POST', 'PATH': '/crm/v2/customers', 'STATUS': 'available'}
    deprecated = CREATE_V2.model_copy(update={'definition': {'deprecated': True}})
    assert score_candidate(deprecated, row, signals, {}) is None
    assert score_candidate(CREATE_V2, {**row, 'STATUS': 'Retired'}, signals, {}) is None
    assert score_candidate(CREATE_V2, {'PATH': '/other', 'STATUS': 'available'}, LogSignals(), {}) is None


def test_suggest_operation_ranks_latest_version_first(catalog):
    suggestion = suggest_operation(CUSTOMER_LOG, OPERATIONS, catalog)

    assert suggestion.status == 'matched'
    assert suggestion.best.operation.operation_id == 'createCustomer'
    assert suggestion.confidence == 97
    assert [c.total for c in suggestion.ranking] == [151, 136, 128, 118]
    assert [c.operation.operation_id for c in suggestion.alternatives] == [
        'createCustomerV1', 'deleteCustomer', 'searchInvoices'
    ]
    assert suggestion.reasons == [
        'Namespace matches the backend target path', 'Similar backend service', 'Path and method match'
    ]
    assert suggestion.version_filter == 'v2'
    assert suggestion.candidate_keys[0] == 'POST:/crm/v2/customers'

    assert [op.operation_id for op in filter_operations(OPERATIONS, suggestion)] == [
        'createCustomer', 'deleteCustomer'
    ]


def test_suggest_operation_ambiguous_and_none(catalog):
    log = '<Req><name>TARGET_SERVICE</name><value>Invoice Query</value></Req>'
    ambiguous = suggest_operation(log, [SEARCH_INVOICES], catalog)
    assert ambiguous.status == 'ambiguous'
    assert ambiguous.confidence == 42

    nothing = suggest_operation('<a>1</a>', [SEARCH_INVOICES], catalog.iloc[:1])
    assert nothing.status == 'none'
    assert nothing.best is None
    assert filter_operations(OPERATIONS, nothing) == OPERATIONS

    assert suggest_operation('', OPERATIONS, catalog) is None
    assert suggest_operation(CUSTOMER_LOG, OPERATIONS, catalog.iloc[0:0]) is None
