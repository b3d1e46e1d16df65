# extractors/xml_parser.py
"""
XML parsing into a namespace-agnostic element tree.

lxml does the parsing; the result is converted into plain ``XmlElement``
nodes (qualified name, ordered attributes, mixed element/text children) so the
mapping engine never touches parser-specific objects.
"""
import re
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

from lxml import etree

logger = logging.getLogger(__name__)

SYNTHETIC_ROOT = '__root__'
UNBOUND_NAMESPACE_PREFIX = 'urn:unbound:'


class XmlParseError(ValueError):
    """Raised when XML text cannot be parsed, even after automatic repairs"""


@dataclass
class XmlElement:
    """Read-only element node of a parsed XML document"""
    name: str
    attributes: List[Tuple[str, str]] = field(default_factory=list)
    children: List[Union['XmlElement', str]] = field(default_factory=list)
    parent: Optional['XmlElement'] = field(default=None, repr=False, compare=False)

    @property
    def local_name(self) -> str:
        return self.name.split(':')[-1]

    @property
    def element_children(self) -> List['XmlElement']:
        return [child for child in self.children if isinstance(child, XmlElement)]

    @property
    def has_element_children(self) -> bool:
        return any(isinstance(child, XmlElement) for child in self.children)

    @property
    def text_content(self) -> str:
        """Concatenation of all descendant text, like DOM ``textContent``"""
        parts = []
        for child in self.children:
            if isinstance(child, XmlElement):
                parts.append(child.text_content)
            else:
                parts.append(child)
        return ''.join(parts)

    def has_attribute(self, name: str) -> bool:
        return any(attr_name == name for attr_name, _ in self.attributes)

    def iter(self):
        """Yield this element and every descendant element in document order"""
        yield self
        for child in self.element_children:
            yield from child.iter()

    def siblings_named(self, local_name: str) -> List['XmlElement']:
        if self.parent is None:
            return [self] if self.local_name == local_name else []
        return [sibling for sibling in self.parent.element_children if sibling.local_name == local_name]


def _qualified_name(tag: str, prefix: Optional[str]) -> str:
    local = etree.QName(tag).localname
    return f"{prefix}:{local}" if prefix else local


def _attribute_name(key: str, nsmap: dict) -> str:
    qname = etree.QName(key)
    if not qname.namespace:
        return qname.localname
    for prefix, uri in nsmap.items():
        if prefix and uri == qname.namespace:
            return f"{prefix}:{qname.localname}"
    return qname.localname


def _convert(node, parent: Optional[XmlElement] = None) -> XmlElement:
    element = XmlElement(
        name=_qualified_name(node.tag, node.prefix),
        attributes=[(_attribute_name(k, node.nsmap), v) for k, v in node.attrib.items()],
        parent=parent
    )
    if node.text:
        element.children.append(node.text)
    for child in node:
        # Comments and processing instructions only contribute their tail text
        if isinstance(child.tag, str):
            element.children.append(_convert(child, element))
        if child.tail:
            element.children.append(child.tail)
    return element


def _build_parser():
    return etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        remove_comments=True,
        remove_pis=True,
        huge_tree=False
    )


def _parse(xml_text: str) -> XmlElement:
    root = etree.fromstring(xml_text, parser=_build_parser())
    return _convert(root)


_DECLARATION = re.compile(r'^\s*<\?xml[^>]*\?>\s*', re.IGNORECASE)
_MESSAGE_ENVELOPE = re.compile(r'<(?:\w+:)?message\b[^>]*>([\s\S]*?)</(?:\w+:)?message>', re.IGNORECASE)


def strip_xml_declaration(xml_text: str) -> str:
    return _DECLARATION.sub('', xml_text, count=1)


def clean_xml_input(raw_text: str) -> str:
    """Strip a byte-order mark and markdown backticks from pasted XML"""
    if not raw_text:
        return ''
    cleaned = raw_text.lstrip('\ufeff')
    cleaned = re.sub(r'`\s*', '', cleaned)
    cleaned = re.sub(r'\s*`', '', cleaned)
    return cleaned.strip()


def unwrap_log_message(xml_text: str) -> str:
    """
    Content of the first ``<message>`` element when the paste is a log record

    Only markup is unwrapped: a ``<message>`` holding plain text is an
    ordinary payload field and the document is returned unchanged.
    """
    if not xml_text:
        return ''
    match = _MESSAGE_ENVELOPE.search(xml_text)
    if match and match.group(1).strip().startswith('<'):
        return match.group(1).strip()
    return xml_text


def repair_namespace_syntax(xml_text: str) -> str:
    """Fix the namespace declaration typos that show up in hand-edited samples"""
    corrected = re.sub(r'xmlns:\s*"', 'xmlns="', xml_text)
    corrected = re.sub(r'xmlns\s*:\s*([\w.-]+)\s*=\s*"', r'xmlns:\1="', corrected)
    corrected = re.sub(r'(xmlns[^=\s]*)\s*=\s*"\s*`([^`]+)`\s*"', r'\1="\2"', corrected)
    return corrected


def declare_unbound_prefixes(xml_text: str) -> str:
    """Declare every namespace prefix that is used but never bound, on the first element"""
    used = set(re.findall(r'</?([A-Za-z_][\w.-]*):[A-Za-z_]', xml_text))
    used.update(re.findall(r'\s([A-Za-z_][\w.-]*):[A-Za-z_][\w.-]*\s*=', xml_text))
    declared = set(re.findall(r'xmlns:([\w.-]+)\s*=', xml_text))
    missing = sorted(p for p in used - declared if p not in ('xml', 'xmlns'))
    if not missing:
        return xml_text

    first_tag = re.search(r'<([A-Za-z_][\w:.-]*)', xml_text)
    if not first_tag:
        return xml_text
    declarations = ''.join(f' xmlns:{p}="{UNBOUND_NAMESPACE_PREFIX}{p}"' for p in missing)
    insert_at = first_tag.end()
    return xml_text[:insert_at] + declarations + xml_text[insert_at:]


def parse_xml_safely(xml_string: str) -> XmlElement:
    """
    Parse XML text into an ``XmlElement`` tree

    Tries the text as-is, then with namespace syntax repairs and undeclared
    prefixes bound, then wrapped in a synthetic root when the input is a
    fragment or a run of sibling elements.

    Raises:
        XmlParseError: when every attempt fails
    """
    xml = strip_xml_declaration((xml_string or '').strip())
    if not xml:
        raise XmlParseError('Invalid XML input - the document is empty')

    try:
        return _parse(xml)
    except etree.XMLSyntaxError as e:
        first_error = e

    corrected = declare_unbound_prefixes(repair_namespace_syntax(xml))
    if corrected != xml:
        try:
            root = _parse(corrected)
            logger.warning(f"XML parsed after namespace repair (original error: {first_error})")
            return root
        except etree.XMLSyntaxError:
            pass

    if not xml.startswith('<') or re.search(r'</[\w:.-]+>\s*<[\w:]', xml):
        wrapped = declare_unbound_prefixes(f"<{SYNTHETIC_ROOT}>{repair_namespace_syntax(xml)}</{SYNTHETIC_ROOT}>")
        try:
            root = _parse(wrapped)
            logger.warning("XML parsed after wrapping in a synthetic root element")
            return root
        except etree.XMLSyntaxError:
            pass

    logger.error(f"XML parsing failed: {first_error}")
    raise XmlParseError(
        'Invalid XML input - check the XML syntax, especially the namespace '
        f'declarations ({first_error})'
    )
