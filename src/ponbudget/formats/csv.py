"""
CSV terminal table format.

One row per terminal: name, optical path, received power, status.
Semicolon-delimited so decimal commas in spreadsheets do not collide.
"""

import csv
import io

from ..aggregate import power_status
from ..config import get_config
from .base import EvaluatedProject, ReportFormat, registry

FIELDNAMES = ["Terminal", "Path", "Power (dBm)", "Status"]


class TerminalCSVFormat(ReportFormat):
    """Terminal signal table."""

    @property
    def name(self) -> str:
        return "csv"

    @property
    def extensions(self) -> list[str]:
        return [".csv"]

    def render(self, evaluated: EvaluatedProject) -> str:
        report = get_config().report
        buffer = io.StringIO()
        writer = csv.DictWriter(buffer, fieldnames=FIELDNAMES, delimiter=";", lineterminator="\n")
        writer.writeheader()
        for terminal in evaluated.terminals:
            writer.writerow({
                "Terminal": terminal.name,
                "Path": terminal.path,
                "Power (dBm)": f"{terminal.power_out:.2f}",
                "Status": power_status(terminal.power_out, report),
            })
        return buffer.getvalue()


registry.register(TerminalCSVFormat())
