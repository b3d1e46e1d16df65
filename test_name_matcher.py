# test_name_matcher.py
"""
Tests for fuzzy field-name scoring
"""
from extractors.xml_parser import XmlElement
from mapper.similarity_engine import (
    TOKEN_SCORE_CAP,
    choose_best_element_by_name,
    get_name_variants,
    normalize_field_name,
    pluralize,
    score_name_match,
    singularize,
)


def test_identical_names_score_100():
    for name in ['id', 'customerId', 'ns:Order', 'TARGET_SERVICE', 'x']:
        assert score_name_match(name, name) == 100


def test_tier_order():
    assert score_name_match('CustomerID', 'customerid') == 96
    assert score_name_match('CustomerId', 'customer_id') == 92
    assert score_name_match('ns:customerId', 'customer-id') == 92
    assert score_name_match('orders', 'order') == 88
    assert score_name_match('Code', 'codes') == 84


def test_format_insensitive_match():
    assert score_name_match('targetService', 'TARGET_SERVICE') >= 84


def test_token_overlap_rounds_half_up():
    # 1 shared token of 2 -> 37.5
    assert score_name_match('customerName', 'customerId') == 38


def test_token_overlap_prefix_boost():
    # 2 of 3 tokens -> 50, plus prefix boost
    assert score_name_match('customerAddressLine', 'customerAddress') == 58


def test_token_score_never_exceeds_cap():
    score = score_name_match('orderLineItemIdentifierCode', 'orderLineItemIdentifier')
    assert score <= TOKEN_SCORE_CAP


def test_unrelated_and_empty_names():
    assert score_name_match('address', 'phone') == 0
    assert score_name_match('', 'phone') == 0
    assert score_name_match(None, 'phone') == 0


def test_normalize_and_variants():
    assert normalize_field_name('ns:orderLineItem') == 'order_line_item'
    assert normalize_field_name('--Weird  Name--') == 'weird_name'
    assert get_name_variants('OrderItems') == {'order_items', 'order_item', 'order', 'items'}


def test_singular_and_plural_forms():
    assert singularize('orders') == 'order'
    assert singularize('addresses') == 'address'
    assert singularize('s') == 's'
    assert pluralize('category') == 'categories'
    assert pluralize('items') == 'items'
    assert pluralize('code') == 'codes'


def test_choose_best_element_by_name():
    children = [XmlElement('foo'), XmlElement('customer_id'), XmlElement('CustomerID')]
    assert choose_best_element_by_name(children, 'customerId').name == 'CustomerID'
    assert choose_best_element_by_name(children, 'zzz') is None


def test_choose_best_element_ties_keep_first():
    first, second = XmlElement('a:code'), XmlElement('b:code')
    assert choose_best_element_by_name([first, second], 'code') is first
