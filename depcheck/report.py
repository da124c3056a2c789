"""Plain data rendering of scan results for the CLI and service."""

from __future__ import annotations

import json
from typing import Any, Dict, List

from .engine import ScanResult
from .feeds.pipeline import IngestionReport
from .models import Component


def component_to_dict(component: Component) -> Dict[str, Any]:
    return {
        "path": str(component.path),
        "file_name": component.file_name,
        "sha1": component.sha1,
        "identifiers": [
            {
                "type": identifier.type,
                "value": identifier.value,
                "confidence": identifier.confidence.name,
                "url": identifier.url,
            }
            for identifier in component.identifiers
        ],
        "vulnerabilities": [
            {
                "id": vulnerability.id,
                "description": vulnerability.description,
                "references": [reference.url for reference in vulnerability.references],
            }
            for vulnerability in component.vulnerabilities
        ],
        "related": [str(related.path) for related in component.related],
        "failures": [str(failure) for failure in component.failures],
    }


def summarize(result: ScanResult) -> Dict[str, Any]:
    components: List[Dict[str, Any]] = [component_to_dict(item) for item in result.components]
    return {
        "analyzers": list(result.analyzers),
        "warnings": list(result.warnings),
        "stale": result.stale,
        "components": components,
        "vulnerable_components": len(result.vulnerable),
        "vulnerability_count": sum(len(item.vulnerabilities) for item in result.components),
    }


def summarize_ingestion(report: IngestionReport) -> Dict[str, Any]:
    return {
        "degraded": report.degraded,
        "feeds": {
            feed_id: {
                "outcome": result.outcome.value,
                "state": result.state.value,
                "persisted": result.persisted,
                "discarded": result.discarded,
                "error": str(result.error) if result.error else None,
            }
            for feed_id, result in sorted(report.results.items())
        },
    }


def render_json(result: ScanResult) -> str:
    return json.dumps(summarize(result), indent=2, sort_keys=True)


__all__ = ["component_to_dict", "render_json", "summarize", "summarize_ingestion"]
