"""Export per-lead outcomes of a run to CSV or Excel."""
from __future__ import annotations

from pathlib import Path
from typing import MutableMapping, Optional, Sequence, Union

import pandas as pd

from .models import LeadOutcome

PathLike = Union[str, Path]

REPORT_COLUMNS = [
    "lead_id",
    "mode",
    "status",
    "stage",
    "deal_id",
    "contact_id",
    "owner_id",
    "call_id",
    "error",
]


def outcomes_to_dataframe(outcomes: Sequence[LeadOutcome]) -> pd.DataFrame:
    """Convert run outcomes into a :class:`pandas.DataFrame`."""

    return pd.DataFrame([outcome.as_row() for outcome in outcomes], columns=REPORT_COLUMNS)


def export_outcomes(
    outcomes: Sequence[LeadOutcome],
    path: PathLike,
    *,
    sheet_name: str = "Leads",
    exporter_kwargs: Optional[MutableMapping[str, object]] = None,
) -> Path:
    """Write the run report to ``path``; the suffix selects the format."""

    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    dataframe = outcomes_to_dataframe(outcomes)
    exporter_kwargs = dict(exporter_kwargs or {})
    suffix = output_path.suffix.lower()

    if suffix in {".csv", ".tsv"}:
        if suffix == ".tsv":
            exporter_kwargs.setdefault("sep", "\t")
        dataframe.to_csv(output_path, index=False, **exporter_kwargs)
        return output_path

    if suffix in {".xlsx", ".xlsm"}:
        engine = exporter_kwargs.pop("engine", None) or "openpyxl"
        dataframe.to_excel(output_path, index=False, sheet_name=sheet_name, engine=engine, **exporter_kwargs)
        return output_path

    raise ValueError(f"Unsupported report file extension: {suffix}")


__all__ = ["REPORT_COLUMNS", "export_outcomes", "outcomes_to_dataframe"]
