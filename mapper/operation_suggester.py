# mapper/operation_suggester.py
"""
Guess which catalogued operation an XML log belongs to

Signals are read from the log (protocol, service namespace, target service,
business entities, intent verbs, routing name/value pairs) and every OpenAPI
operation is scored against every catalog row. Hard evidence (namespace,
backend service or path/method) is required before a pair is ranked at all.
"""
import re
import logging
from typing import Dict, List, Optional

import pandas as pd

from extractors.xml_navigator import repair_mojibake
from extractors.xml_parser import XmlParseError, parse_xml_safely
from loaders.dataset_loader import COLUMN_FALLBACKS, CatalogDataset
from mapper.request_mapper import extract_name_value_pairs, normalize_key
from mapper.schemas import CandidateScore, LogSignals, Operation, OperationSuggestion
from mapper.similarity_engine import jaccard_similarity, round_half_up, split_tokens

logger = logging.getLogger(__name__)

SIGNAL_ENTITIES = ('Person', 'Account', 'Contract', 'Product', 'Order', 'Billing', 'Asset', 'Party',
                   'Customer', 'Subscription', 'Ticket', 'Case', 'Incident', 'Payment')
INTENT_KEYWORDS = ('manage', 'create', 'update', 'search', 'delete', 'activate', 'deactivate',
                   'validate', 'verify', 'migrate', 'sync')
WEAK_HEADER_KEYS = ('process', 'servicename', 'operation', 'flow', 'interface', 'system', 'module',
                    'action_type', 'correlation_id')

# Score weights
NAMESPACE_SCORE = 50
SERVICE_NAMESPACE_SCORE = 32
DOMAIN_SCORE = 15
PAYLOAD_SCORE_CAP = 15
VERB_SCORE_CAP = 10
HEADER_SCORE = 5
METHOD_BOOST = 8
LATEST_VERSION_BONUS = 5
OLDER_VERSION_PENALTY = 10
ROW_VERSION_BONUS = 3
MIN_HARD_EVIDENCE = 12
CONFIDENCE_SCALE = 156

# Suggestion levels
MIN_CONFIDENCE = 60
STRONG_CONFIDENCE = 80
RANKING_SIZE = 6
ALTERNATIVES_SIZE = 3
CANDIDATE_KEYS_SIZE = 12

_DOMAIN_SERVICE_PATTERNS = (
    re.compile(r'urn:[^:]*:([^/:\s]+)/([^/:\s]+)(?:/data)?', re.IGNORECASE),
    re.compile(r'/soa/[^/\s]*/([^/\s]+)/([^/\s]+)', re.IGNORECASE),
    re.compile(r'/services/([^/\s]+)/([^/\s]+)', re.IGNORECASE),
)
_BACKEND_PATTERN = re.compile(r'/backend/([^/\s]+)', re.IGNORECASE)
_SERVICE_NAMESPACE = re.compile(r'urn:|/soa/|/services/|/backend/', re.IGNORECASE)
_NAMESPACE_DECLARATION = re.compile(r'xmlns(?::[\w-]+)?="([^"]+)"', re.IGNORECASE)
_TARGET_SERVICE_PAIR = re.compile(
    r'<[^>]*:?name[^>]*>\s*TARGET[_\s-]?SERVICE\s*</[^>]+>\s*<[^>]*:?value[^>]*>\s*([^<\n]+)\s*</[^>]+>',
    re.IGNORECASE
)
_TARGET_SERVICE_TEXT = (
    re.compile(r'<[^>]*:?targetservice[^>]*>\s*([^<\n]+)\s*</[^>]+>', re.IGNORECASE),
    re.compile(r'<[^>]*:?target_service[^>]*>\s*([^<\n]+)\s*</[^>]+>', re.IGNORECASE),
    re.compile(r'<[^>]*:?servicename[^>]*>\s*([^<\n]+)\s*</[^>]+>', re.IGNORECASE),
    re.compile(r'Target Service\s*[:=]\s*([^\r\n<]+)', re.IGNORECASE),
)
_TARGET_SERVICE_ELEMENTS = ('targetservice', 'servicename')
_VERSION_IN_PATH = re.compile(r'/v(\d+)(\.\d+)?/', re.IGNORECASE)
_VERSION_NUMBER = re.compile(r'v(\d+(?:\.\d+)?)', re.IGNORECASE)

REASON_LABELS = (
    ('namespace', 'Namespace matches the backend target path'),
    ('service', 'Similar backend service'),
    ('domain', 'Compatible domain'),
    ('payload', 'Payload entities match'),
    ('verb', 'Compatible verb/intent'),
    ('path', 'Path and method match'),
    ('header', 'Header/metadata hints'),
)


def extract_domain_service(text: str) -> Dict[str, str]:
    """Domain and service encoded in a service namespace (urn, /soa/, /services/ or /backend/)"""
    empty = {'domain': '', 'service': '', 'namespace': ''}
    if not text:
        return empty
    source = str(text)
    for pattern in _DOMAIN_SERVICE_PATTERNS:
        match = pattern.search(source)
        if match:
            return {
                'domain': repair_mojibake(match.group(1)),
                'service': repair_mojibake(match.group(2)),
                'namespace': source
            }
    match = _BACKEND_PATTERN.search(source)
    if match:
        return {'domain': '', 'service': repair_mojibake(match.group(1)), 'namespace': source}
    return empty


def extract_target_service_from_log(xml_content: str) -> str:
    """
    Backend target service named in a log

    Looks, in order, at name/value pairs, ``TARGET_SERVICE`` pairs, tag and
    free-text patterns, then at any targetService/serviceName element.
    """
    if not xml_content or not xml_content.strip():
        return ''

    for name, value in extract_name_value_pairs(xml_content).items():
        if 'targetservice' in normalize_key(name) and value:
            return repair_mojibake(value.strip())

    match = _TARGET_SERVICE_PAIR.search(xml_content)
    if match:
        return repair_mojibake(match.group(1).strip())

    for pattern in _TARGET_SERVICE_TEXT:
        match = pattern.search(xml_content)
        if match and match.group(1).strip():
            return repair_mojibake(match.group(1).strip())

    try:
        document = parse_xml_safely(xml_content)
    except XmlParseError as e:
        logger.debug(f"Target service scan skipped the element tree: {e}")
        return ''
    for element in document.iter():
        if normalize_key(element.local_name) in _TARGET_SERVICE_ELEMENTS:
            value = repair_mojibake(element.text_content.strip())
            if value:
                return value
    return ''


def _word_hits(words, text: str) -> List[str]:
    return [word for word in words if re.search(rf'\b{re.escape(word)}\b', text, re.IGNORECASE)]


def parse_signals_from_log(xml_content: str) -> LogSignals:
    source = str(xml_content or '')
    pairs = extract_name_value_pairs(source)

    if re.search(r'soap|xmlsoap|soapenv|soap-env', source, re.IGNORECASE):
        protocol = 'soap'
    elif re.match(r'\s*\{', source):
        protocol = 'rest-json'
    else:
        protocol = 'xml'

    namespaces = [repair_mojibake(ns) for ns in _NAMESPACE_DECLARATION.findall(source)]
    namespace = next((ns for ns in namespaces if _SERVICE_NAMESPACE.search(ns)), '')
    parts = extract_domain_service(namespace)

    weak_keys = [normalize_key(k) for k in WEAK_HEADER_KEYS]
    headers = {name: value for name, value in pairs.items()
               if any(k in normalize_key(name) for k in weak_keys)}

    return LogSignals(
        protocol=protocol,
        namespace=namespace,
        domain=parts['domain'],
        service=parts['service'],
        target_service=extract_target_service_from_log(source),
        payload_entities=_word_hits(SIGNAL_ENTITIES, source),
        intents=_word_hits(INTENT_KEYWORDS, source),
        headers=headers
    )


def normalize_path(path) -> str:
    return re.sub(r'/+$', '', str(path or '').strip()).lower()


def extract_version(path) -> str:
    """'v2' / 'v1.1' from a '/v2/' path segment, '-' when there is none"""
    match = _VERSION_IN_PATH.search(str(path or ''))
    return f"v{match.group(1)}{match.group(2) or ''}" if match else '-'


def version_number(value) -> float:
    match = _VERSION_NUMBER.search(str(value or ''))
    return float(match.group(1)) if match else 0.0


def operation_family_key(operation: Operation) -> str:
    """Method and path with the version segment wildcarded, shared by all versions of an operation"""
    family_path = re.sub(r'/v\d+(\.\d+)?/', '/v*/', normalize_path(operation.path), count=1, flags=re.IGNORECASE)
    return f"{operation.method}:{family_path}"


def _path_pattern(normalized_path: str) -> str:
    escaped = re.escape(normalized_path)
    escaped = escaped.replace(r'\*', '[^/]+')
    return re.sub(r'\\\{.*?\\\}', '[^/]+', escaped)


def path_match_score(catalog_path: str, operation_path: str) -> int:
    """
    How well a catalog path denotes an operation path

    20 equal, 16/14 when either matches the other with '{param}' or '*'
    segments as wildcards, 10 on containment, 8 for the same first three
    segments, else 0.
    """
    catalog_norm = normalize_path(catalog_path)
    operation_norm = normalize_path(operation_path)
    if not catalog_norm or not operation_norm:
        return 0
    if catalog_norm == operation_norm:
        return 20
    if re.fullmatch(_path_pattern(catalog_norm), operation_norm, re.IGNORECASE):
        return 16
    if re.fullmatch(_path_pattern(operation_norm), catalog_norm, re.IGNORECASE):
        return 14
    if operation_norm in catalog_norm or catalog_norm in operation_norm:
        return 10
    if catalog_norm.split('/')[:4] == operation_norm.split('/')[:4]:
        return 8
    return 0


def _row_value(row, field: str) -> str:
    value = CatalogDataset.field(row, field)
    return '' if value == COLUMN_FALLBACKS.get(field) else value


def _overlap_score(words: List[str], text: str, cap: int) -> int:
    if not words:
        return 0
    return min(cap, round_half_up(len(_word_hits(words, text)) / len(words) * cap))


def latest_versions(operations: List[Operation]) -> Dict[str, float]:
    """Highest path version per operation family"""
    latest = {}
    for operation in operations:
        family = operation_family_key(operation)
        latest[family] = max(latest.get(family, 0.0), version_number(extract_version(operation.path)))
    return latest


def score_candidate(operation: Operation, row, signals: LogSignals,
                    max_versions: Dict[str, float]) -> Optional[CandidateScore]:
    """
    Score one operation against one catalog row

    Deprecated operations and rows that are not 'available' are skipped, as
    are pairs without hard evidence. Returns None for skipped pairs.
    """
    if operation.definition.get('deprecated'):
        return None
    status = CatalogDataset.field(row, 'status')
    if status and status != 'available':
        return None

    row_method = _row_value(row, 'method').upper()
    row_version = _row_value(row, 'version')
    target_service = _row_value(row, 'target_service')
    target_path = _row_value(row, 'target_path')
    operation_version = extract_version(operation.path)

    details = {key: 0 for key, _ in REASON_LABELS}
    details['path'] = path_match_score(_row_value(row, 'path'), operation.path)
    method_boost = METHOD_BOOST if row_method and row_method == operation.method else 0

    similarity = jaccard_similarity(signals.service_hint, target_service) if signals.service_hint else 0.0
    if similarity >= 0.95:
        details['service'] = 30
    elif similarity >= 0.65:
        details['service'] = 22
    elif similarity >= 0.4:
        details['service'] = 12

    namespace_norm = normalize_key(signals.namespace)
    target_path_norm = normalize_key(target_path)
    if namespace_norm and target_path_norm and (namespace_norm in target_path_norm or target_path_norm in namespace_norm):
        details['namespace'] = NAMESPACE_SCORE
    elif signals.service and normalize_key(signals.service) in target_path_norm:
        details['namespace'] = SERVICE_NAMESPACE_SCORE

    if signals.domain:
        domain_norm = normalize_key(signals.domain)
        if domain_norm in target_path_norm or domain_norm in normalize_key(target_service):
            details['domain'] = DOMAIN_SCORE

    definition = operation.definition
    operation_text = ' '.join([
        operation.path,
        definition.get('operationId') or '',
        definition.get('summary') or '',
        ' '.join(definition.get('tags') or []),
        target_path,
        target_service
    ])
    details['payload'] = _overlap_score(signals.payload_entities, operation_text, PAYLOAD_SCORE_CAP)
    details['verb'] = _overlap_score(signals.intents, operation_text, VERB_SCORE_CAP)

    lowered = operation_text.lower()
    hints = [str(v).lower().strip() for v in signals.headers.values() if v]
    if any(len(hint) >= 3 and hint in lowered for hint in hints):
        details['header'] = HEADER_SCORE

    version_score = 0
    latest = max_versions.get(operation_family_key(operation), 0.0)
    current = version_number(operation_version)
    if current and current == latest:
        version_score = LATEST_VERSION_BONUS
    if current and latest and current < latest:
        version_score -= OLDER_VERSION_PENALTY
    if row_version and operation_version and row_version.lower() == operation_version.lower():
        version_score += ROW_VERSION_BONUS
    details['version'] = version_score
    details['method'] = method_boost

    if max(details['namespace'], details['service'], details['path'] + method_boost) < MIN_HARD_EVIDENCE:
        return None

    total = sum(details.values())
    confidence = max(0, min(99, round_half_up(total / CONFIDENCE_SCALE * 100)))
    return CandidateScore(
        operation=operation,
        total=total,
        confidence=confidence,
        details=details,
        target_service=target_service,
        target_path=target_path,
        status=status,
        version=operation_version
    )


def decision_reasons(details: Dict[str, int]) -> List[str]:
    """Labels of the three strongest positive score components"""
    scored = []
    for key, label in REASON_LABELS:
        score = details.get(key, 0)
        if key == 'path':
            score += details.get('method', 0)
        if score > 0:
            scored.append((score, label))
    scored.sort(key=lambda item: -item[0])
    return [label for _, label in scored[:3]]


def suggest_operation(xml_text: str, operations: List[Operation], catalog: Optional[pd.DataFrame],
                      min_confidence: int = MIN_CONFIDENCE) -> Optional[OperationSuggestion]:
    """
    Rank ``operations`` for an XML log using the catalog rows

    Each operation keeps its best-scoring row. Returns None when there is no
    log, no operation or no catalog to work with.
    """
    if not xml_text or not xml_text.strip() or not operations or catalog is None or catalog.empty:
        return None

    signals = parse_signals_from_log(xml_text.strip())
    max_versions = latest_versions(operations)

    best_by_operation: Dict[str, CandidateScore] = {}
    for operation in operations:
        for _, row in catalog.iterrows():
            scored = score_candidate(operation, row, signals, max_versions)
            if scored is None:
                continue
            existing = best_by_operation.get(scored.key)
            if existing is None or scored.total > existing.total:
                best_by_operation[scored.key] = scored

    ranked = sorted(best_by_operation.values(), key=lambda candidate: -candidate.total)
    if not ranked:
        logger.info("No operation has enough evidence for this log")
        return OperationSuggestion(status='none', signals=signals)

    best = ranked[0]
    if best.confidence < min_confidence:
        status = 'ambiguous'
    elif best.confidence < STRONG_CONFIDENCE:
        status = 'partial'
    else:
        status = 'matched'
    logger.info(f"🔎 Suggested {best.operation.method} {best.operation.path} ({status}, {best.confidence}%)")

    return OperationSuggestion(
        status=status,
        confidence=best.confidence,
        best=best,
        ranking=ranked[:RANKING_SIZE],
        alternatives=ranked[1:1 + ALTERNATIVES_SIZE],
        reasons=decision_reasons(best.details),
        signals=signals,
        domain_filter=signals.domain,
        service_filter=signals.service_hint,
        version_filter=best.version,
        candidate_keys=[candidate.key for candidate in ranked[:CANDIDATE_KEYS_SIZE]]
    )


def matches_suggestion_filters(operation: Operation, suggestion: OperationSuggestion) -> bool:
    """Domain, service-token and version filters derived from a suggestion"""
    definition = operation.definition
    text = ' '.join([
        operation.path,
        definition.get('operationId') or '',
        ' '.join(definition.get('tags') or []),
        definition.get('summary') or ''
    ]).lower()
    if suggestion.domain_filter and suggestion.domain_filter.lower() not in text:
        return False
    tokens = split_tokens(suggestion.service_filter)
    if tokens and not any(len(token) > 2 and token in text for token in tokens):
        return False
    if suggestion.version_filter and extract_version(operation.path).lower() != suggestion.version_filter.lower():
        return False
    return True


def filter_operations(operations: List[Operation], suggestion: Optional[OperationSuggestion]) -> List[Operation]:
    """Operations consistent with a suggestion; all of them when there is nothing to filter by"""
    if suggestion is None or suggestion.best is None:
        return list(operations)
    keys = set(suggestion.candidate_keys)
    return [
        operation for operation in operations
        if matches_suggestion_filters(operation, suggestion)
        and (not keys or f"{operation.method}:{operation.path}" in keys)
    ]
