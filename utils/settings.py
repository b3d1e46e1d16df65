# utils/settings.py
"""
Toolbox configuration read from the environment (.env supported)
"""
import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class ToolboxSettings(BaseModel):
    host_variable: str = Field(default='ApigeeHost', description="Host placeholder used in Postman/cURL")
    user: str = Field(default='U80063362', description="Default X-user header")
    application: str = Field(default='POSTMAN', description="Default X-application header")
    process: str = Field(default='Testing', description="Default X-process header")
    dataset_url: Optional[str] = None
    dataset_token: Optional[str] = None
    dataset_cache_ttl: int = 300
    history_file: str = 'history/history.json'
    history_limit: int = 20
    log_level: str = 'INFO'
    log_file: Optional[str] = None
    mapping_max_depth: int = 32
    docs_portal_url: Optional[str] = Field(default=None, description="API portal docs base, catalog default when unset")
    docs_download_url: Optional[str] = Field(default=None, description="API portal spec download base")
    suggestion_min_confidence: int = 60

    @property
    def host_placeholder(self) -> str:
        return '{{' + self.host_variable + '}}'

    def default_headers(self, include_authorization: bool = False) -> List[dict]:
        """Headers sent with every generated request"""
        headers = [
            {'key': 'Traceparent', 'value': '{{$guid}}'},
            {'key': 'X-Flow-ID', 'value': '{{$guid}}'},
            {'key': 'X-application', 'value': self.application},
            {'key': 'X-originalApplication', 'value': self.application},
            {'key': 'X-process', 'value': self.process},
            {'key': 'X-user', 'value': self.user},
            {'key': 'Content-Type', 'value': 'application/json'},
            {'key': 'Accept', 'value': 'application/json'},
        ]
        if include_authorization:
            headers.append({'key': 'Authorization', 'value': '{{bearerToken}}'})
        else:
            headers.append({'key': 'X-eTrackingID', 'value': ''})
        return headers


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}")


def load_settings() -> ToolboxSettings:
    """Build settings from environment variables, after loading a .env file if present"""
    load_dotenv()
    defaults = ToolboxSettings()
    return ToolboxSettings(
        host_variable=os.getenv('TOOLBOX_HOST_VARIABLE', defaults.host_variable),
        user=os.getenv('TOOLBOX_USER', defaults.user),
        application=os.getenv('TOOLBOX_APPLICATION', defaults.application),
        process=os.getenv('TOOLBOX_PROCESS', defaults.process),
        dataset_url=os.getenv('DATASET_URL') or None,
        dataset_token=(os.getenv('DATASET_TOKEN') or '').strip() or None,
        dataset_cache_ttl=_int_env('DATASET_CACHE_TTL', defaults.dataset_cache_ttl),
        history_file=os.getenv('HISTORY_FILE', defaults.history_file),
        history_limit=_int_env('HISTORY_LIMIT', defaults.history_limit),
        log_level=os.getenv('LOG_LEVEL', defaults.log_level),
        log_file=os.getenv('LOG_FILE') or None,
        mapping_max_depth=_int_env('MAPPING_MAX_DEPTH', defaults.mapping_max_depth),
        docs_portal_url=os.getenv('DOCS_PORTAL_URL') or None,
        docs_download_url=os.getenv('DOCS_DOWNLOAD_URL') or None,
        suggestion_min_confidence=_int_env('SUGGESTION_MIN_CONFIDENCE', defaults.suggestion_min_confidence),
    )
