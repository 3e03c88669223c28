"""
Unit tests for the text report format.
"""

from pathlib import Path

from ponbudget.dom import Node, NodeKind, Project
from ponbudget.formats.base import evaluate_project, registry
from ponbudget.formats.json import load_project
from ponbudget.formats.text import TextReportFormat, describe, render_tree


FIXTURES = Path(__file__).parent.parent.parent / "fixtures"


def sample():
    return evaluate_project(load_project((FIXTURES / "sample_project.json").read_text()))


class TestTextReportFormat:
    def setup_method(self):
        self.fmt = TextReportFormat()

    def test_name(self):
        assert self.fmt.name == "text"

    def test_extensions(self):
        assert ".txt" in self.fmt.extensions

    def test_registered(self):
        assert registry.get_by_name("text") is not None

    def test_header(self):
        lines = self.fmt.render(sample()).splitlines()
        assert lines[0] == "Rua das Flores"
        assert lines[1] == "Source power: 5.0 dBm"
        assert lines[2] == "Terminals: 3"

    def test_worst_signal(self):
        output = self.fmt.render(sample())
        assert "Worst signal: -16.85 dBm at ONU 2 (ok)" in output

    def test_terminal_rows(self):
        output = self.fmt.render(sample())
        row = next(line for line in output.splitlines() if line.strip().startswith("ONU 3"))
        assert "-7.20 dBm" in row
        assert row.endswith("P2 > Pass")

    def test_loss_breakdown(self):
        output = self.fmt.render(sample())
        assert "Loss by component" in output
        total = next(line for line in output.splitlines() if line.strip().startswith("Total"))
        assert total.strip().endswith("dB")

    def test_empty_project(self):
        project = Project(root=Node(id="root", kind=NodeKind.SOURCE, label="OLT", branches=[[]]))
        output = self.fmt.render(evaluate_project(project))
        assert "Terminals: 0" in output
        assert "Worst signal" not in output
        assert "Loss by component" not in output


class TestTree:
    def test_port_tags(self):
        lines = render_tree(sample().annotated)
        assert any("[P1] ONU 1" in line for line in lines)
        assert any("[DROP] ONU 2" in line for line in lines)
        assert any("[PASS] SC/APC" in line for line in lines)

    def test_root_first(self):
        lines = render_tree(sample().annotated)
        assert lines[0] == "└─ OLT 5.00 dBm"

    def test_describe_fiber(self):
        node = Node(id="f", kind=NodeKind.FIBER_SPAN, label="Feeder", length_value=1.5,
                    power_out=-1.0)
        assert describe(node) == "Feeder (1.5km) -1.00 dBm"

    def test_describe_splitter(self):
        node = Node(id="s", kind=NodeKind.BALANCED_SPLITTER, label="CTO", split_ratio="1:8")
        assert describe(node) == "CTO (1:8)"

    def test_describe_falls_back_to_kind(self):
        assert describe(Node(id="c", kind=NodeKind.CONNECTOR)) == "CONNECTOR"
