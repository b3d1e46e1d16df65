# mapper/schemas.py
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SchemaType(str, Enum):
    """Effective type of a (resolved) OpenAPI schema node"""
    STRING = 'string'
    NUMBER = 'number'
    INTEGER = 'integer'
    BOOLEAN = 'boolean'
    OBJECT = 'object'
    ARRAY = 'array'
    UNKNOWN = 'unknown'

    @property
    def is_primitive(self) -> bool:
        return self in (SchemaType.STRING, SchemaType.NUMBER, SchemaType.INTEGER, SchemaType.BOOLEAN)

    @classmethod
    def from_value(cls, value) -> 'SchemaType':
        if isinstance(value, list):
            value = next((v for v in value if v != 'null'), None)
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class MappingDiagnostic(BaseModel):
    """Non-fatal problem found while mapping XML onto a schema"""
    message: str = Field(description="Human readable description")
    path: str = Field(default='', description="Dotted property path where it happened")
    severity: str = Field(default='warning', description="warning or error")


class MappingResult(BaseModel):
    """Output of one XML -> JSON mapping call"""
    result: Any = None
    diagnostics: List[MappingDiagnostic] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(d.severity == 'error' for d in self.diagnostics)


class Operation(BaseModel):
    """One HTTP operation declared under ``paths`` of an OpenAPI document"""
    path: str
    method: str
    operation_id: str
    definition: Dict[str, Any] = Field(default_factory=dict)

    @property
    def parameters(self) -> List[Dict[str, Any]]:
        return self.definition.get('parameters') or []

    @property
    def has_body(self) -> bool:
        return self.method in ('POST', 'PUT', 'PATCH')


class RequestParam(BaseModel):
    """Path or query parameter ready to be placed in a request"""
    key: str
    value: str = ''
    enabled: bool = True
    description: str = ''


class HeaderEntry(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    key: str
    value: str = ''
    enabled: bool = True
    description: str = ''
    source: str = 'default'
    removable: Optional[bool] = None
    locked: Optional[bool] = None


class RequestMapping(BaseModel):
    """Everything needed to render a request for one operation"""
    path_params: List[RequestParam] = Field(default_factory=list)
    query_params: List[RequestParam] = Field(default_factory=list)
    headers: List[HeaderEntry] = Field(default_factory=list)
    body_full: Optional[str] = None
    body_pruned: Optional[str] = None
    diagnostics: List[MappingDiagnostic] = Field(default_factory=list)

    def body(self, pruned: bool = False) -> Optional[str]:
        if pruned and self.body_pruned:
            return self.body_pruned
        return self.body_full


class LogSignals(BaseModel):
    """Routing hints read from an XML log, used to guess the operation it belongs to"""
    protocol: str = Field(default='xml', description="soap, rest-json or xml")
    namespace: str = Field(default='', description="First namespace that looks like a service URN/path")
    domain: str = ''
    service: str = ''
    target_service: str = ''
    payload_entities: List[str] = Field(default_factory=list)
    intents: List[str] = Field(default_factory=list)
    headers: Dict[str, str] = Field(default_factory=dict)

    @property
    def service_hint(self) -> str:
        return self.target_service or self.service


class CandidateScore(BaseModel):
    """One operation scored against one catalog row"""
    operation: Operation
    total: int
    confidence: int = Field(ge=0, le=99)
    details: Dict[str, int] = Field(default_factory=dict)
    target_service: str = ''
    target_path: str = ''
    status: str = ''
    version: str = '-'

    @property
    def key(self) -> str:
        return f"{self.operation.method}:{self.operation.path}"


class OperationSuggestion(BaseModel):
    """Ranked guess of the operation an XML log belongs to"""
    status: str = Field(description="matched, partial, ambiguous or none")
    confidence: int = 0
    best: Optional[CandidateScore] = None
    ranking: List[CandidateScore] = Field(default_factory=list)
    alternatives: List[CandidateScore] = Field(default_factory=list)
    reasons: List[str] = Field(default_factory=list)
    signals: LogSignals = Field(default_factory=LogSignals)
    domain_filter: str = ''
    service_filter: str = ''
    version_filter: str = ''
    candidate_keys: List[str] = Field(default_factory=list)
