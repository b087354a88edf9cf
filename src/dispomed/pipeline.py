"""High level orchestration for the availability report."""
from __future__ import annotations

import csv
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .calculations import (
    aggregate,
    chart_window,
    classify,
    detect_recent_changes,
    filter_incidents,
    report_date,
)
from .config import Config, default_config
from .data_models import Incident, ProductReport, group_by_product
from .loader import read_incidents
from .utils import PipelineError, check_window, sha256_hexdigest

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    config: Config
    run_user: str
    run_timestamp: datetime
    report_date: date
    window_start: date
    window_end: date


OUTPUT_HEADERS = [
    "Product_ID",
    "Year",
    "Status",
    "Is_Active",
    "Since",
    "Rupture_Days",
    "Tension_Days",
    "Arret_Days",
    "Disponible_Days",
    "Total_Days",
    "Score",
    "Recent_Change",
    "Recent_Change_Status",
    "Recent_Change_Date",
    "Report_Date",
    "Window_Start",
    "Window_End",
    "Run_Timestamp",
    "Run_User",
    "Engine_Version",
]


AUDIT_HEADERS = [
    "Run_Timestamp",
    "Run_User",
    "Engine_Version",
    "Report_Date",
    "Window_Start",
    "Window_End",
    "Products_Count",
    "Output_Hash",
]


class Pipeline:
    def __init__(self, config: Config | None = None):
        self.config = config or default_config()

    def build_context(
        self,
        incidents: Sequence[Incident],
        run_user: str,
        window_start: Optional[date] = None,
        window_end: Optional[date] = None,
    ) -> RunContext:
        as_of = report_date(incidents)
        default_start, default_end = chart_window(as_of, self.config.months_to_show)
        start = window_start or default_start
        end = window_end or default_end
        check_window(start, end)
        logger.info("Report date %s, window %s to %s", as_of, start, end)
        return RunContext(
            config=self.config,
            run_user=run_user,
            run_timestamp=datetime.now(timezone.utc),
            report_date=as_of,
            window_start=start,
            window_end=end,
        )

    def run(self, incidents: Sequence[Incident], context: RunContext) -> List[ProductReport]:
        recent = detect_recent_changes(incidents, context.report_date, self.config.recency_window_days)
        reports: List[ProductReport] = []
        for product_id, rows in group_by_product(incidents).items():
            reports.append(
                ProductReport(
                    product_id=product_id,
                    classification=classify(rows, context.report_date),
                    aggregate=aggregate(
                        rows,
                        context.window_start,
                        context.window_end,
                        context.report_date,
                        weights=self.config.score_weights,
                    ),
                    recent_change=recent.get(product_id),
                )
            )
        logger.info("Built %d product reports (%d with recent changes)", len(reports), len(recent))
        return reports


class OutputWriter:
    def __init__(self, output_path: Path, audit_path: Path):
        self.output_path = output_path
        self.audit_path = audit_path

    def _rows(self, reports: List[ProductReport], context: RunContext) -> List[Dict[str, object]]:
        run_fields = {
            "Report_Date": context.report_date.isoformat(),
            "Window_Start": context.window_start.isoformat(),
            "Window_End": context.window_end.isoformat(),
            "Run_Timestamp": context.run_timestamp.isoformat(),
            "Run_User": context.run_user,
            "Engine_Version": context.config.version,
        }
        rows: List[Dict[str, object]] = []
        for report in reports:
            for row in report.as_rows():
                row.update(run_fields)
                rows.append(row)
        return rows

    def write_results(self, reports: List[ProductReport], context: RunContext) -> None:
        rows = self._rows(reports, context)
        output_dir = self.output_path.parent
        if output_dir and not output_dir.exists():
            output_dir.mkdir(parents=True, exist_ok=True)
        temp_dir = output_dir or Path(".")
        temp_file = tempfile.NamedTemporaryFile(
            "w",
            newline="",
            encoding="utf-8",
            delete=False,
            dir=temp_dir,
        )
        try:
            with temp_file:
                writer = csv.DictWriter(temp_file, OUTPUT_HEADERS)
                writer.writeheader()
                writer.writerows(rows)
            os.replace(temp_file.name, self.output_path)
        finally:
            if os.path.exists(temp_file.name):
                os.unlink(temp_file.name)
        logger.info("Wrote %d rows to %s", len(rows), self.output_path)
        self._append_audit(reports, rows, context)

    def _append_audit(
        self,
        reports: List[ProductReport],
        rows: List[Dict[str, object]],
        context: RunContext,
    ) -> None:
        # Run metadata is excluded so identical inputs hash identically.
        hash_input = [
            json.dumps(
                {key: value for key, value in row.items() if not key.startswith("Run_")},
                sort_keys=True,
                ensure_ascii=False,
                separators=(",", ":"),
            )
            for row in rows
        ]
        digest = sha256_hexdigest(hash_input)
        exists = self.audit_path.exists()
        audit_dir = self.audit_path.parent
        if audit_dir and not audit_dir.exists():
            audit_dir.mkdir(parents=True, exist_ok=True)
        with self.audit_path.open("a", newline="", encoding="utf-8") as handle:
            writer = csv.DictWriter(handle, AUDIT_HEADERS)
            if not exists:
                writer.writeheader()
            writer.writerow(
                {
                    "Run_Timestamp": context.run_timestamp.isoformat(),
                    "Run_User": context.run_user,
                    "Engine_Version": context.config.version,
                    "Report_Date": context.report_date.isoformat(),
                    "Window_Start": context.window_start.isoformat(),
                    "Window_End": context.window_end.isoformat(),
                    "Products_Count": len(reports),
                    "Output_Hash": digest,
                }
            )


def run_pipeline(
    incidents_csv: Path,
    output_csv: Path,
    audit_csv: Path,
    run_user: str,
    window_start: Optional[date] = None,
    window_end: Optional[date] = None,
    config: Config | None = None,
    search: Optional[str] = None,
    atc_code: Optional[str] = None,
) -> List[ProductReport]:
    pipeline = Pipeline(config)
    incidents = read_incidents(incidents_csv)
    if not incidents:
        raise PipelineError(f"No incidents found in {incidents_csv}")
    # The report date comes from the whole extract, not the filtered subset.
    context = pipeline.build_context(incidents, run_user, window_start, window_end)
    selected = filter_incidents(incidents, search=search, atc_code=atc_code)
    if len(selected) < len(incidents):
        logger.info("Filter kept %d of %d incidents", len(selected), len(incidents))
    if not selected:
        logger.warning("No incidents match search=%r atc_code=%r", search, atc_code)
    reports = pipeline.run(selected, context)
    writer = OutputWriter(output_csv, audit_csv)
    writer.write_results(reports, context)
    return reports
