"""
JSON output formatter for contract violations.
Collects violations raised while exercising contracted code.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.config import AssertionKind
from ..core.errors import ContractViolation
from ..core.models import Site
from ..utils.hashing import hash_string


class ViolationJSONFormatter:
    """
    Formats contract violations as structured JSON.
    """

    SCHEMA_VERSION = "1.0.0"

    def __init__(self, source: Optional[str] = None):
        """
        Initialize formatter.

        Args:
            source: Name of the module, file or test run that produced the violations
        """
        self.source = source
        self.results: List[Dict[str, Any]] = []

    def add_violation(self, violation: ContractViolation) -> None:
        """
        Add a violation.

        Args:
            violation: A raised ContractViolation
        """
        label = violation.label
        result = {
            "kind": violation.kind.value,
            "label": getattr(label, "name", label),
            "expression": violation.expression,
            "expression_hash": hash_string(violation.expression),
            "declared_at": _site(violation.assertion_site),
            "call_site": _site(violation.call_site),
            "binding": {name: repr(value) for name, value in violation.binding.items()},
        }

        cause = violation.__cause__
        if cause is not None:
            result["cause"] = {"type": type(cause).__name__, "message": str(cause)}

        self.results.append(result)

    def generate(self) -> Dict[str, Any]:
        """
        Generate the complete JSON output structure.

        Returns:
            Dictionary representing the JSON structure
        """
        by_kind = {kind.value: 0 for kind in AssertionKind}
        for result in self.results:
            by_kind[result["kind"]] += 1

        return {
            "schema_version": self.SCHEMA_VERSION,
            "metadata": {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "source": self.source,
                "generator": "pledge-0.1.0",
            },
            "summary": {
                "total_violations": len(self.results),
                **by_kind,
            },
            "results": self.results,
        }

    def to_json_string(self, indent: int = 2) -> str:
        """
        Generate JSON string.

        Args:
            indent: Number of spaces for indentation

        Returns:
            Formatted JSON string
        """
        return json.dumps(self.generate(), indent=indent)

    def save_to_file(self, output_path: str, indent: int = 2) -> None:
        """
        Save JSON to file.

        Args:
            output_path: Path to output JSON file
            indent: Number of spaces for indentation
        """
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(self.generate(), f, indent=indent)


def _site(site: Optional[Site]) -> Optional[Dict[str, Any]]:
    if site is None:
        return None
    return {
        "module": site.module,
        "function": site.describe() if site.function else None,
        "file": site.file,
        "line": site.line,
    }
