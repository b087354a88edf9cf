"""Loading and parsing utilities for raw incident rows."""
from __future__ import annotations

import csv
import logging
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional

from .data_models import Incident, Status
from .utils import PipelineError, ValidationError, parse_date, parse_optional_date

logger = logging.getLogger(__name__)


def derive_calculated_end(
    end_date: Optional[date],
    updated_on: Optional[date],
    last_report_on: Optional[date],
) -> Optional[date]:
    """Known end date, otherwise the latest refresh date seen for the row."""
    if end_date is not None:
        return end_date
    known = [value for value in (updated_on, last_report_on) if value is not None]
    return max(known) if known else None


def _optional_text(row: Dict[str, Optional[str]], *columns: str) -> Optional[str]:
    for column in columns:
        value = (row.get(column) or "").strip()
        if value:
            return value
    return None


def read_incidents(csv_path: Path) -> List[Incident]:
    incidents: List[Incident] = []
    with csv_path.open(newline="", encoding="utf-8-sig") as handle:
        reader = csv.DictReader(handle)
        required = {"product_id", "status", "start_date", "end_date"}
        missing = required.difference(reader.fieldnames or [])
        if missing:
            raise PipelineError(f"Incident file missing columns: {sorted(missing)}")
        for idx, row in enumerate(reader, start=2):
            product_id = (row["product_id"] or "").strip()
            if not product_id:
                raise ValidationError(f"Row {idx}: missing product_id")
            try:
                status = Status.parse(row["status"])
            except ValidationError as exc:
                raise ValidationError(f"Row {idx}: {exc}") from exc
            try:
                start_date = parse_date(row["start_date"])
            except ValueError as exc:
                raise ValidationError(f"Row {idx}: invalid start_date '{row['start_date']}': {exc}") from exc
            try:
                end_date = parse_optional_date(row["end_date"])
                calculated_end = parse_optional_date(row.get("calculated_end_date"))
                if calculated_end is None:
                    calculated_end = derive_calculated_end(
                        end_date,
                        parse_optional_date(row.get("mise_a_jour_date")),
                        parse_optional_date(row.get("date_dernier_rapport")),
                    )
            except ValueError as exc:
                raise ValidationError(f"Row {idx}: invalid end dates: {exc}") from exc
            if calculated_end is None:
                raise ValidationError(f"Row {idx}: open incident without any refresh date")
            try:
                incidents.append(
                    Incident(
                        product_id=product_id,
                        status=status,
                        start_date=start_date,
                        calculated_end_date=calculated_end,
                        end_date=end_date,
                        atc_code=_optional_text(row, "atc_code", "classe_atc"),
                        molecule=_optional_text(row, "molecule", "molecule_name"),
                    )
                )
            except ValidationError as exc:
                raise ValidationError(f"Row {idx}: {exc}") from exc
    logger.info("Loaded %d incidents from %s", len(incidents), csv_path)
    return incidents
