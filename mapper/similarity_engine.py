# mapper/similarity_engine.py
"""
Fuzzy field-name matching across naming conventions

Scores how likely an XML element/attribute name denotes a schema property
name. Tiers are checked in order and each one dominates the next:

    100  exact
     96  case-insensitive
     92  normalized (namespace, camelCase, snake_case, kebab-case)
     88  singular forms equal
     84  one name's variants contain the other
    <=82 token overlap (+8 prefix boost)
"""
import math
import re
from typing import Iterable, List, Optional, Set

# Tier scores
EXACT_SCORE = 100
CASE_INSENSITIVE_SCORE = 96
NORMALIZED_SCORE = 92
SINGULAR_SCORE = 88
VARIANT_SCORE = 84
TOKEN_SCORE_CAP = 82
TOKEN_SCORE_SCALE = 75
PREFIX_BOOST = 8

# Acceptance thresholds
DEFAULT_MIN_SCORE = 60
CHILD_MIN_SCORE = 64
ATTRIBUTE_MIN_SCORE = 70
NAME_VALUE_MIN_SCORE = 70
OWN_FIELD_MIN_SCORE = 88
OWN_NODE_MIN_SCORE = 92

# Schema-compatibility boosts used when ranking candidate nodes
OBJECT_BOOST_PER_KEY = 3
OBJECT_BOOST_CAP = 12
ARRAY_BOOST = 4
TEXT_BOOST = 5


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def normalize_field_name(name) -> str:
    """Strip namespace prefix, split camelCase, collapse punctuation to '_' and lowercase"""
    if not name:
        return ''
    raw = str(name)
    no_ns = raw.split(':')[-1] if ':' in raw else raw
    normalized = re.sub(r'([a-z0-9])([A-Z])', r'\1_\2', no_ns)
    normalized = re.sub(r'[^a-zA-Z0-9]+', '_', normalized)
    return normalized.strip('_').lower()


def tokenize_field_name(name) -> List[str]:
    normalized = normalize_field_name(name)
    if not normalized:
        return []
    return [token for token in normalized.split('_') if token]


def singularize(name: str) -> str:
    """Basic English singular form: drop 'es' (length > 2) or a trailing 's'"""
    if not name or len(name) < 2:
        return name
    if name.endswith('es') and len(name) > 2:
        return name[:-2]
    if name.endswith('s'):
        return name[:-1]
    return name


def pluralize(name: str) -> str:
    if not name:
        return name
    if name.endswith('s'):
        return name
    if name.endswith('y') and len(name) > 1:
        return f"{name[:-1]}ies"
    return f"{name}s"


def get_name_variants(name) -> Set[str]:
    normalized = normalize_field_name(name)
    if not normalized:
        return set()
    variants = {normalized, singularize(normalized), pluralize(normalized)}
    variants.update(tokenize_field_name(name))
    return variants


def score_name_match(candidate_name, target_name) -> int:
    """
    Confidence (0-100) that ``candidate_name`` denotes ``target_name``

    Args:
        candidate_name: Name found in the XML (element or attribute)
        target_name: Name expected by the schema

    Returns:
        Integer score, 0 when the names share nothing
    """
    if not candidate_name or not target_name:
        return 0
    candidate_raw = str(candidate_name)
    target_raw = str(target_name)
    if candidate_raw == target_raw:
        return EXACT_SCORE
    if candidate_raw.lower() == target_raw.lower():
        return CASE_INSENSITIVE_SCORE

    candidate_norm = normalize_field_name(candidate_raw)
    target_norm = normalize_field_name(target_raw)
    if not candidate_norm or not target_norm:
        return 0
    if candidate_norm == target_norm:
        return NORMALIZED_SCORE
    if singularize(candidate_norm) == singularize(target_norm):
        return SINGULAR_SCORE

    if target_norm in get_name_variants(candidate_raw) or candidate_norm in get_name_variants(target_raw):
        return VARIANT_SCORE

    candidate_tokens = tokenize_field_name(candidate_raw)
    target_tokens = tokenize_field_name(target_raw)
    if not candidate_tokens or not target_tokens:
        return 0

    target_set = set(target_tokens)
    shared = sum(1 for token in candidate_tokens if token in target_set)
    if shared == 0:
        return 0

    token_score = round_half_up(shared / max(len(candidate_tokens), len(target_tokens)) * TOKEN_SCORE_SCALE)
    prefixed = candidate_norm.startswith(target_norm) or target_norm.startswith(candidate_norm)
    return min(TOKEN_SCORE_CAP, token_score + (PREFIX_BOOST if prefixed else 0))


def best_score_for_names(candidate_name, target_names: Iterable[str]) -> int:
    return max((score_name_match(candidate_name, target) for target in target_names if target), default=0)


def choose_best_element_by_name(children, target_name, min_score: int = DEFAULT_MIN_SCORE) -> Optional[object]:
    """
    Highest-scoring element whose local name matches ``target_name``

    Ties keep the first-seen element. Returns None below ``min_score``.
    """
    if not children or not target_name:
        return None
    best = None
    best_score = 0
    for child in children:
        score = score_name_match(child.local_name, target_name)
        if score > best_score:
            best_score = score
            best = child
    return best if best_score >= min_score else None


def split_tokens(value) -> List[str]:
    """Lowercase word tokens of free text, splitting camelCase and any punctuation"""
    spaced = re.sub(r'([a-z0-9])([A-Z])', r'\1 \2', str(value or ''))
    return re.sub(r'[^a-zA-Z0-9]+', ' ', spaced).lower().split()


def jaccard_similarity(left, right) -> float:
    """Token-set Jaccard index of two texts, 0.0 when either has no tokens"""
    left_set = set(split_tokens(left))
    right_set = set(split_tokens(right))
    if not left_set or not right_set:
        return 0.0
    return len(left_set & right_set) / len(left_set | right_set)
