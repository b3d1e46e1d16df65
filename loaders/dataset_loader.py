# loaders/dataset_loader.py
import base64
import io
import re
import time
import logging
from typing import Dict, List, Optional, Tuple

import pandas as pd
import requests

from utils.decorators import handle_request_errors, retry_on_error

logger = logging.getLogger(__name__)

COLUMN_ALIASES = {
    'method': ['METHOD', 'Method', 'method'],
    'path': ['PATH', 'Path', 'path'],
    'version': ['VERSION', 'Version', 'version'],
    'target_name': ['TARGET NAME', 'TARGET_NAME', 'Target Name', 'targetName'],
    'target_path': ['TARGET PATH', 'TARGET_PATH', 'Target Path', 'targetPath', 'backendPath'],
    'target_service': ['TARGET SERVICE', 'TARGET_SERVICE', 'Target Service', 'targetService', 'serviceName'],
    'status': ['STATUS', 'Status', 'status'],
    'name': ['NAME', 'Name', 'name'],
    'platform': ['PLATFORM', 'Platform', 'platform'],
    'network': ['NETWORK', 'Network', 'network'],
    'docs_version': ['DOCS VERSION', 'Docs Version', 'docsVersion', 'Api Docs Version'],
}

COLUMN_FALLBACKS = {
    'method': 'N/A',
    'path': '-',
    'version': 'None',
    'target_name': 'No target',
    'target_path': '-',
    'target_service': '-',
    'network': '-',
}

MERGE_FIELDS = ['method', 'path', 'version', 'target_name', 'target_path',
                'target_service', 'name', 'platform', 'status']

GROUP_FIELDS = {'target': 'target_name', 'method': 'method', 'basePath': 'base_path'}

DOCS_PORTAL_BASE = 'https://apigee-p-693214-teste.apigee.io/docs'
DOCS_DOWNLOAD_BASE = ('https://apigee-p-693214-teste.apigee.io/portals/api/sites/'
                      'apigee-p-693214-teste/liveportal/apis')
APIGEE_X_PLATFORMS = ('apigee-x', 'apigeex')


def normalize_docs_api_name(name, keep_case: bool = False) -> str:
    """Proxy name as a portal slug: words joined by '-', other punctuation dropped"""
    slug = str(name or '').strip()
    if not keep_case:
        slug = slug.lower()
    slug = re.sub(r'[\s_]+', '-', slug)
    slug = re.sub(r'[^a-zA-Z0-9-]', '', slug)
    return re.sub(r'-+', '-', slug).strip('-')


def _apigee_x_temp_slug(slug: str) -> str:
    if re.match(r'apigee-x-temp-', slug, re.IGNORECASE):
        return slug
    if re.match(r'apigee-x-', slug, re.IGNORECASE):
        return re.sub(r'^apigee-x-', 'apigee-x-temp-', slug, flags=re.IGNORECASE)
    return f"apigee-x-temp-{slug}"


class DatasetAuthError(RuntimeError):
    """Raised when the dataset endpoint rejects the API key"""


def parse_catalog_csv(text: str, delimiter: str = ';') -> pd.DataFrame:
    """
    Parse the API catalog export

    Blank lines are skipped, quoted cells may contain the delimiter, cells
    are trimmed and missing trailing cells become ''. Every column is kept
    as text.
    """
    if not text or not text.strip():
        return pd.DataFrame()

    df = pd.read_csv(
        io.StringIO(text),
        sep=delimiter,
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
        on_bad_lines='skip'
    )
    df.columns = [str(c).strip() for c in df.columns]
    df = df.fillna('').apply(lambda column: column.str.strip())
    logger.info(f"Parsed catalog CSV: {len(df)} rows, {len(df.columns)} columns")
    return df


def decode_dataset_payload(payload: Dict) -> str:
    """CSV text from a ``{"base64": ...}`` dataset payload"""
    encoded = (payload or {}).get('base64')
    if not encoded:
        raise ValueError("Dataset payload has no 'base64' content")
    return base64.b64decode(encoded).decode('utf-8')


@retry_on_error(max_retries=2, delay=1.0)
@handle_request_errors
def fetch_remote_dataset(url: str, token: Optional[str] = None, session=None, timeout: float = 30) -> Dict:
    """
    Download the catalog payload

    Raises:
        DatasetAuthError: the endpoint answered 401
        requests.HTTPError: any other non-2xx answer
    """
    http = session or requests
    headers = {'X-API-Key': token.strip()} if token and token.strip() else {}
    response = http.get(url, headers=headers, timeout=timeout)
    if response.status_code == 401:
        raise DatasetAuthError("Dataset API requires a valid token (set DATASET_TOKEN)")
    response.raise_for_status()
    payload = response.json()
    if not isinstance(payload, dict) or not payload.get('base64'):
        raise ValueError("Invalid dataset payload")
    logger.info(f"✅ Fetched dataset version {payload.get('version', 'unknown')}")
    return payload


class CatalogDataset:
    """
    Searchable view over the API catalog

    Rows are read through column aliases so exports with different header
    spellings work the same.
    """

    def __init__(self, df: Optional[pd.DataFrame] = None, cache_ttl: int = 300):
        self.df = df if df is not None else pd.DataFrame()
        self.cache_ttl = cache_ttl
        self._cache: Dict[str, Tuple[float, Dict]] = {}

    @classmethod
    def from_csv(cls, text: str, cache_ttl: int = 300) -> 'CatalogDataset':
        return cls(parse_catalog_csv(text), cache_ttl=cache_ttl)

    def load_remote(self, url: str, token: Optional[str] = None, session=None) -> pd.DataFrame:
        """Fetch (or reuse the cached payload) and replace the current rows"""
        cached = self._cache.get(url)
        if cached and time.time() - cached[0] <= self.cache_ttl:
            logger.info("Using cached dataset payload")
            payload = cached[1]
        else:
            payload = fetch_remote_dataset(url, token, session=session)
            self._cache[url] = (time.time(), payload)
        self.df = parse_catalog_csv(decode_dataset_payload(payload))
        return self.df

    @staticmethod
    def field(row, field: str) -> str:
        """First non-empty aliased column of ``row``, else the field's fallback"""
        for column in COLUMN_ALIASES.get(field, [field]):
            value = row.get(column) if hasattr(row, 'get') else None
            if value is not None and not (isinstance(value, float) and pd.isna(value)) and str(value).strip():
                value = str(value).strip()
                return value.lower() if field == 'status' else value
        return COLUMN_FALLBACKS.get(field, '')

    @classmethod
    def base_path(cls, row) -> str:
        path = cls.field(row, 'path')
        if not path or path == '-':
            return '-'
        segments = [s for s in path.split('/') if s]
        return '/' + '/'.join(segments[:3])

    @classmethod
    def platform(cls, row) -> str:
        return re.sub(r'\s+', '', cls.field(row, 'platform').lower())

    @classmethod
    def docs_slug(cls, row) -> str:
        """Portal API id of the row's proxy; '' for platforms without a portal"""
        name = normalize_docs_api_name(cls.field(row, 'name'))
        if not name:
            return ''
        platform = cls.platform(row)
        if platform == 'apigee-hybrid':
            return name if name.endswith('-dev') else f"{name}-dev"
        if platform in APIGEE_X_PLATFORMS:
            return _apigee_x_temp_slug(name)
        return ''

    @classmethod
    def docs_url(cls, row, portal_base: str = DOCS_PORTAL_BASE) -> str:
        slug = cls.docs_slug(row)
        if not slug:
            return ''
        docs_version = cls.field(row, 'docs_version')
        if not docs_version.isdigit():
            docs_version = '1'
        return f"{portal_base.rstrip('/')}/{slug}/{docs_version}/overview"

    @classmethod
    def download_spec_url(cls, row, download_base: str = DOCS_DOWNLOAD_BASE) -> str:
        """
        Spec download link of the row's proxy

        Apigee X portals can be case-sensitive on the API id, so the proxy
        name keeps its case there.
        """
        slug = cls.docs_slug(row)
        if not slug:
            return ''
        if cls.platform(row) in APIGEE_X_PLATFORMS:
            slug = _apigee_x_temp_slug(normalize_docs_api_name(cls.field(row, 'name'), keep_case=True))
        return f"{download_base.rstrip('/')}/{slug}/download_spec"

    def search(self, term: str = '', only_available: bool = True) -> pd.DataFrame:
        """Rows whose status is 'available' (optional) and with any cell containing ``term``"""
        df = self.df
        if df.empty:
            return df

        mask = pd.Series(True, index=df.index)
        if only_available:
            mask &= df.apply(lambda row: self.field(row, 'status') == 'available', axis=1)
        if term:
            needle = term.lower()
            mask &= df.apply(lambda row: any(needle in str(v).lower() for v in row.values), axis=1)
        return df[mask]

    def merge_networks(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Collapse rows that differ only by network

        The merged row keeps the first row's cells and lists every network,
        comma separated, in its network column.
        """
        if df.empty:
            return df.copy()

        merged: Dict[tuple, dict] = {}
        networks: Dict[tuple, List[str]] = {}
        counts: Dict[tuple, int] = {}
        for _, row in df.iterrows():
            key = tuple(self.field(row, f) for f in MERGE_FIELDS)
            network = self.field(row, 'network')
            if key not in merged:
                merged[key] = row.to_dict()
                networks[key] = [network]
                counts[key] = 1
                continue
            counts[key] += 1
            if network not in networks[key]:
                networks[key].append(network)

        network_columns = [c for c in COLUMN_ALIASES['network'] if c in df.columns] or ['NETWORK']
        records = []
        for key, record in merged.items():
            joined = ', '.join(n for n in networks[key] if n)
            for column in network_columns:
                record[column] = joined
            record['merged_rows'] = counts[key]
            records.append(record)
        return pd.DataFrame(records)

    def group(self, df: pd.DataFrame, by: str = 'target') -> List[Tuple[str, pd.DataFrame]]:
        """Groups ordered by size (largest first), then key"""
        if by not in GROUP_FIELDS:
            raise ValueError(f"Unknown grouping '{by}', expected one of {sorted(GROUP_FIELDS)}")
        if df.empty:
            return []

        if GROUP_FIELDS[by] == 'base_path':
            keys = df.apply(self.base_path, axis=1)
        else:
            keys = df.apply(lambda row: self.field(row, GROUP_FIELDS[by]), axis=1)
        keys = keys.replace('', 'Ungrouped')

        groups = [(key, df[keys == key]) for key in keys.unique()]
        groups.sort(key=lambda item: (-len(item[1]), item[0]))
        return groups
