# test_xml_navigator.py
"""
Tests for XML parsing, navigation and mojibake repair
"""
import pytest

from extractors.xml_navigator import (
    element_text,
    extract_primitive,
    find_all_elements_by_local_name,
    find_child_by_local_name,
    find_child_elements_by_local_name,
    get_attribute_value,
    get_local_name,
    looks_like_mojibake,
    repair_mojibake,
)
from extractors.xml_parser import XmlParseError, clean_xml_input, parse_xml_safely, unwrap_log_message

SAMPLE_XML = """<ns:Root xmlns:ns="urn:a" ns:code="X" Status="open">
    <ns:Item>1</ns:Item>
    <ns:item>2</ns:item>
    <ns:Items><ns:Item>3</ns:Item></ns:Items>
    <ns:customerName>Ana</ns:customerName>
</ns:Root>"""


@pytest.fixture
def root():
    return parse_xml_safely(SAMPLE_XML)


def test_local_names(root):
    assert root.name == 'ns:Root'
    assert get_local_name(root) == 'Root'
    assert get_local_name('soapenv:Body') == 'Body'


def test_namespace_declarations_are_not_attributes(root):
    assert [name for name, _ in root.attributes] == ['ns:code', 'Status']


def test_find_child_tiers(root):
    assert element_text(find_child_by_local_name(root, 'item')) == '2'
    assert element_text(find_child_by_local_name(root, 'ITEM')) == '1'
    assert element_text(find_child_by_local_name(root, 'customer_name')) == 'Ana'
    assert find_child_by_local_name(root, 'phone') is None


def test_find_child_elements_collects_winning_name(root):
    assert [element_text(e) for e in find_child_elements_by_local_name(root, 'item')] == ['2']
    assert [element_text(e) for e in find_child_elements_by_local_name(root, 'ITEM')] == ['1', '2']


def test_find_all_elements_is_exact_and_recursive(root):
    assert [element_text(e) for e in find_all_elements_by_local_name(root, 'Item')] == ['1', '3']


def test_attribute_lookup(root):
    assert get_attribute_value(root, 'code') == 'X'
    assert get_attribute_value(root, 'status') == 'open'
    assert get_attribute_value(root, 'missing') is None


def test_extract_primitive_order(root):
    assert extract_primitive(root, 'code') == 'X'
    assert extract_primitive(root, 'customerName') == 'Ana'
    assert extract_primitive(root, 'phone') is None


def test_extract_primitive_uses_own_text_only_when_named_like_the_field():
    node = parse_xml_safely('<Code>A1</Code>')
    assert extract_primitive(node, 'code') == 'A1'
    assert extract_primitive(node, 'description') is None


def test_mojibake_repair():
    assert repair_mojibake('TelemÃ³vel') == 'Telemóvel'
    assert repair_mojibake('Telemóvel') == 'Telemóvel'
    assert repair_mojibake(repair_mojibake('TelemÃ³vel')) == 'Telemóvel'
    assert repair_mojibake('plain text') == 'plain text'
    assert looks_like_mojibake('SÃ£o Paulo')
    assert not looks_like_mojibake('São Paulo')


def test_clean_xml_input_strips_backticks_and_bom():
    assert clean_xml_input('\ufeff```<a>1</a>```') == '<a>1</a>'
    assert clean_xml_input(None) == ''


def test_unwrap_log_message_only_unwraps_markup():
    assert unwrap_log_message('<log><message><a>1</a></message></log>') == '<a>1</a>'
    assert unwrap_log_message('<log><ns:message level="i"> <a>1</a> </ns:message></log>') == '<a>1</a>'
    plain = '<Root><id>7</id><message>hello</message></Root>'
    assert unwrap_log_message(plain) == plain


def test_parse_repairs_namespace_syntax():
    root = parse_xml_safely('<x:Order xmlns : x ="urn:o"><x:id>1</x:id></x:Order>')
    assert root.local_name == 'Order'


def test_parse_binds_undeclared_prefix():
    root = parse_xml_safely('<ns1:Order><ns1:id>1</ns1:id></ns1:Order>')
    assert element_text(find_child_by_local_name(root, 'id')) == '1'


def test_parse_wraps_sibling_roots():
    root = parse_xml_safely('<a>1</a><b>2</b>')
    assert root.name == '__root__'
    assert [child.name for child in root.element_children] == ['a', 'b']


def test_parse_strips_declaration():
    root = parse_xml_safely('<?xml version="1.0" encoding="UTF-8"?>\n<a>1</a>')
    assert element_text(root) == '1'


def test_malformed_xml_raises():
    with pytest.raises(XmlParseError) as excinfo:
        parse_xml_safely('<Root><id>7</id>')
    assert 'XML' in str(excinfo.value)
    assert 'namespace' in str(excinfo.value)


def test_siblings_named():
    root = parse_xml_safely('<r><c>1</c><x/><c>2</c></r>')
    first = root.element_children[0]
    assert [element_text(s) for s in first.siblings_named('c')] == ['1', '2']
