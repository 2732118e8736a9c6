"""
JSON export for pathdiag
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Optional

from ..models import RunSummary
from .. import __version__


class JsonExporter:
    """
    Export the records of a run to JSON format.

    Quiet-mode values are exported as ``{"value": ...}`` entries.
    """

    def export(self, summary: RunSummary, output_path: Optional[Path] = None) -> dict:
        """
        Export run records to JSON.

        Args:
            summary: Records collected during the run
            output_path: Optional file path to write

        Returns:
            JSON-serializable dict
        """
        data = {
            "meta": {
                "version": __version__,
                "generator": "pathdiag",
                "generated_at": datetime.now().isoformat()
            },
            "mode": summary.mode.value,
            "targets": summary.targets,
            "records": [self._serialize(record) for record in summary.records],
            "error_count": summary.error_count,
        }

        if output_path:
            self._write_file(data, output_path)

        return data

    def _serialize(self, record) -> dict:
        """Serialize a single record"""
        if hasattr(record, "to_dict"):
            data = record.to_dict()
            data["type"] = type(record).__name__
            return data
        return {"type": type(record).__name__, "value": record}

    def _write_file(self, data: dict, path: Path):
        """Write JSON to file"""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
