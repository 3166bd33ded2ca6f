"""
Result writer – one row per document, plus ``metadata.json``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List

from datasets import Dataset

from tagette import __version__
from tagette.core.client import ExtractionResult
from tagette.core.result import Result
from tagette.errors import ValidationFailed
from tagette.utils.ids import new_run_id, snake_case

__all__ = ["ResultWriter", "result_row"]


def result_row(row_id: Any, result: Result[ExtractionResult]) -> Dict[str, Any]:
    """Flat JSON-able record for *result* (``row_id`` is always a string)."""
    row: Dict[str, Any] = {"row_id": str(row_id), "ok": result.ok}
    if result.ok:
        row.update(result.value.to_dict())  # type: ignore[union-attr]
        row["request_id"] = result.value.request_id  # type: ignore[union-attr]
        return row
    err = result.error
    row["error_type"] = type(err).__name__
    row["error"] = str(err)
    if isinstance(err, ValidationFailed):
        row["violations"] = [v.to_dict() for v in err.violations]
    return row


class ResultWriter:  # noqa: D101
    def __init__(self, root: Path, fmt: str = "jsonl", schema_name: str = ""):
        if fmt not in ("jsonl", "csv"):
            raise ValueError(f"Unsupported format '{fmt}'. Use 'jsonl' or 'csv'.")
        self.root = Path(root)
        self.fmt = fmt
        self.schema_name = schema_name
        self.run_id = new_run_id()
        self.root.mkdir(parents=True, exist_ok=True)
        self._rows: List[Dict[str, Any]] = []

    # -------------------------------------------------------------- #

    def write(self, row_id: Any, result: Result[ExtractionResult]) -> None:
        self._rows.append(result_row(row_id, result))

    @property
    def rows(self) -> List[Dict[str, Any]]:
        return list(self._rows)

    # -------------------------------------------------------------- #

    def _results_path(self) -> Path:
        stem = snake_case(self.schema_name) or "results"
        return self.root / f"{stem}.{self.fmt}"

    def finalize(self) -> Path:
        """Write results and metadata; return the results file path."""
        path = self._results_path()
        if self.fmt == "jsonl":
            with open(path, "w", encoding="utf-8") as f:
                for row in self._rows:
                    f.write(json.dumps(row, ensure_ascii=False, default=str) + "\n")
        else:
            # Dataset.from_list takes its columns from the first row: align keys first.
            # CSV cells are flat: nested violation lists are stored as JSON text
            columns: List[str] = []
            for row in self._rows:
                columns.extend(k for k in row if k not in columns)
            flat = [
                {
                    k: json.dumps(row[k], ensure_ascii=False) if isinstance(row.get(k), (list, dict)) else row.get(k)
                    for k in columns
                }
                for row in self._rows
            ]
            Dataset.from_list(flat).to_csv(str(path), index=False)

        ok = sum(1 for r in self._rows if r["ok"])
        meta = {
            "run_id": self.run_id,
            "schema": self.schema_name,
            "format": self.fmt,
            "results_file": path.name,
            "counts": {"total": len(self._rows), "ok": ok, "failed": len(self._rows) - ok},
            "generated_by": f"tagette v{__version__}",
        }
        (self.root / "metadata.json").write_text(json.dumps(meta, indent=2), encoding="utf-8")
        return path
