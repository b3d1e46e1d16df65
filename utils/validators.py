# utils/validators.py
"""
Sanity checks for loaded OpenAPI documents and mapping output
"""
import logging
from typing import Any, Dict, List

from mapper.schema_resolver import resolve_ref
from mapper.schemas import MappingDiagnostic

logger = logging.getLogger(__name__)


class SpecValidator:
    """Structural checks that catch documents the toolbox cannot work with"""

    @staticmethod
    def validate_openapi(spec: Dict[str, Any]) -> List[Dict[str, str]]:
        """
        Returns:
            List of issues ({'issue_type', 'message', 'severity'}), empty when fine
        """
        issues = []

        version = str(spec.get('openapi') or spec.get('swagger') or '')
        if not version:
            issues.append({
                'issue_type': 'missing_version',
                'message': "Document declares neither 'openapi' nor 'swagger'",
                'severity': 'error'
            })
        elif not version.startswith('3'):
            issues.append({
                'issue_type': 'unsupported_version',
                'message': f"OpenAPI {version} documents are only partially supported",
                'severity': 'warning'
            })

        if not spec.get('paths'):
            issues.append({
                'issue_type': 'no_paths',
                'message': "Document has no paths",
                'severity': 'error'
            })

        for ref in SpecValidator._collect_refs(spec):
            if resolve_ref(spec, ref) is None:
                issues.append({
                    'issue_type': 'broken_ref',
                    'message': f"Unresolvable reference {ref}",
                    'severity': 'warning'
                })

        if issues:
            logger.warning(f"OpenAPI validation found {len(issues)} issue(s)")
        else:
            logger.info("OpenAPI validation passed")
        return issues

    @staticmethod
    def _collect_refs(node) -> List[str]:
        refs = []
        stack = [node]
        while stack:
            current = stack.pop()
            if isinstance(current, dict):
                ref = current.get('$ref')
                if isinstance(ref, str) and ref not in refs:
                    refs.append(ref)
                stack.extend(current.values())
            elif isinstance(current, list):
                stack.extend(current)
        return refs

    @staticmethod
    def summarize_diagnostics(diagnostics: List[MappingDiagnostic]) -> Dict[str, int]:
        summary = {'error': 0, 'warning': 0}
        for diagnostic in diagnostics:
            summary[diagnostic.severity] = summary.get(diagnostic.severity, 0) + 1
        return summary
