"""Tests for discli.runtime.envelope -- one outcome, two renderings."""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest
from rich.console import Console

from discli.exceptions import RuntimeApiFailure, RuntimeValidationFailure
from discli.runtime.envelope import (
    CommandOutcome,
    Truncation,
    cell_text,
    emit,
    render_agent,
    render_human,
    truncate_result,
)

NEXT = [{"command": "shop items get itm_1", "description": "Fetch an item"}]


def _consoles() -> tuple[Console, io.StringIO, Console, io.StringIO]:
    out, err = io.StringIO(), io.StringIO()
    return (
        Console(file=out, width=200, color_system=None),
        out,
        Console(file=err, width=200, color_system=None),
        err,
    )


# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------


class TestOutcome:
    def test_success_exit_code(self) -> None:
        assert CommandOutcome.success("shop items list", []).exit_code == 0

    def test_failure_exit_code_comes_from_error(self) -> None:
        outcome = CommandOutcome.failure("shop items create", RuntimeValidationFailure("missing --name"))
        assert outcome.exit_code == 2
        assert outcome.next_actions == []

    def test_next_actions_are_copied(self) -> None:
        actions = list(NEXT)
        outcome = CommandOutcome.success("shop items list", [], actions)
        actions.clear()
        assert outcome.next_actions == NEXT


# ---------------------------------------------------------------------------
# Truncation
# ---------------------------------------------------------------------------


class TestTruncateResult:
    def test_small_results_pass_through(self, tmp_path: Path) -> None:
        result = [{"id": i} for i in range(3)]
        assert truncate_result(result, 3, tmp_path, "shop items list") == (result, None)
        assert list(tmp_path.iterdir()) == []

    def test_bare_list_is_cut_and_spilled(self, tmp_path: Path) -> None:
        result = [{"id": i} for i in range(5)]
        shown, truncation = truncate_result(result, 2, tmp_path, "shop items list")

        assert shown == [{"id": 0}, {"id": 1}]
        assert (truncation.total, truncation.shown) == (5, 2)
        spilled = Path(truncation.full_result_path)
        assert spilled.parent == tmp_path
        assert spilled.name.startswith("shop-items-list-")
        assert json.loads(spilled.read_text()) == result

    def test_envelope_object_keeps_other_keys(self, tmp_path: Path) -> None:
        result = {"data": [1, 2, 3], "next_cursor": "c2"}
        shown, truncation = truncate_result(result, 1, tmp_path, "shop items list")
        assert shown == {"data": [1], "next_cursor": "c2"}
        assert truncation.total == 3
        assert result["data"] == [1, 2, 3]

    def test_resource_named_container_is_cut(self, tmp_path: Path) -> None:
        result = {"customers": [{"id": i} for i in range(200)], "has_more": False}
        shown, truncation = truncate_result(result, 50, tmp_path, "shop customers list", resource="customers")

        assert len(shown["customers"]) == 50
        assert shown["has_more"] is False
        assert (truncation.total, truncation.shown) == (200, 50)
        assert json.loads(Path(truncation.full_result_path).read_text()) == result

    def test_only_list_field_is_cut(self, tmp_path: Path) -> None:
        result = {"count": 4, "widgets": [1, 2, 3, 4]}
        shown, truncation = truncate_result(result, 2, tmp_path, "shop things list")
        assert shown == {"count": 4, "widgets": [1, 2]}
        assert truncation.total == 4

    def test_scalars_are_never_cut(self, tmp_path: Path) -> None:
        assert truncate_result({"id": 1}, 0, tmp_path, "x") == ({"id": 1}, None)
        assert truncate_result(None, 0, tmp_path, "x") == (None, None)

    def test_to_dict(self) -> None:
        assert Truncation(total=9, shown=2, full_result_path="/tmp/x.json").to_dict() == {
            "total": 9,
            "shown": 2,
            "truncated": True,
            "full_result_path": "/tmp/x.json",
        }


# ---------------------------------------------------------------------------
# Agent rendering
# ---------------------------------------------------------------------------


class TestRenderAgent:
    def test_success(self) -> None:
        envelope = render_agent(CommandOutcome.success("shop items list", [{"id": "itm_1"}], NEXT))
        assert envelope == {
            "ok": True,
            "command": "shop items list",
            "result": [{"id": "itm_1"}],
            "next_actions": NEXT,
        }

    def test_success_with_truncation(self) -> None:
        truncation = Truncation(total=80, shown=50, full_result_path="/tmp/r.json")
        envelope = render_agent(CommandOutcome.success("shop items list", [], truncation=truncation))
        assert envelope["truncation"]["truncated"] is True
        assert envelope["next_actions"] == []

    def test_failure(self) -> None:
        error = RuntimeApiFailure("HTTP 404", 4, status_code=404, code="NOT_FOUND", fix="Check the id.")
        envelope = render_agent(CommandOutcome.failure("shop items get", error))
        assert envelope == {
            "ok": False,
            "command": "shop items get",
            "error": {"message": "HTTP 404", "code": "NOT_FOUND"},
            "fix": "Check the id.",
            "next_actions": [],
        }

    def test_failure_always_has_a_fix(self) -> None:
        envelope = render_agent(CommandOutcome.failure("shop items get", RuntimeApiFailure("boom")))
        assert envelope["fix"]


# ---------------------------------------------------------------------------
# Human rendering
# ---------------------------------------------------------------------------


class TestRenderHuman:
    def test_failure_goes_to_stderr(self) -> None:
        out_console, out, err_console, err = _consoles()
        error = RuntimeValidationFailure("Missing --name", fix="Pass --name.")
        render_human(CommandOutcome.failure("shop items create", error), out_console, err_console)

        assert out.getvalue() == ""
        assert "Error: Missing --name" in err.getvalue()
        assert "Fix: Pass --name." in err.getvalue()

    def test_records_table(self) -> None:
        out_console, out, err_console, err = _consoles()
        render_human(
            CommandOutcome.success("shop items list", [{"id": "itm_1", "name": "Widget"}], NEXT),
            out_console,
            err_console,
        )
        text = out.getvalue()
        assert "itm_1" in text
        assert "Widget" in text
        assert "-> shop items get itm_1" in err.getvalue()

    def test_object_with_nested_records(self) -> None:
        out_console, out, err_console, _ = _consoles()
        result = {"next_cursor": "c2", "data": [{"id": "itm_1"}]}
        render_human(CommandOutcome.success("shop items list", result), out_console, err_console)
        text = out.getvalue()
        assert "next_cursor" in text
        assert "itm_1" in text

    @pytest.mark.parametrize("result, expected", [([], "No results."), (None, "Done."), ("pong", "pong")])
    def test_simple_results(self, result: object, expected: str) -> None:
        out_console, out, err_console, _ = _consoles()
        render_human(CommandOutcome.success("shop health list", result), out_console, err_console)
        assert out.getvalue().strip() == expected

    def test_truncation_notice(self) -> None:
        out_console, _, err_console, err = _consoles()
        truncation = Truncation(total=80, shown=50, full_result_path="/tmp/r.json")
        render_human(CommandOutcome.success("shop items list", [{"id": 1}], truncation=truncation),
                     out_console, err_console)
        assert "Showing 50 of 80 results; full result saved to /tmp/r.json" in err.getvalue()


class TestEmit:
    def test_agent_prints_one_json_line(self, capsys: pytest.CaptureFixture[str]) -> None:
        code = emit(CommandOutcome.success("shop health list", {"status": "ok"}), "agent")
        captured = capsys.readouterr()
        assert code == 0
        assert json.loads(captured.out) == {
            "ok": True,
            "command": "shop health list",
            "result": {"status": "ok"},
            "next_actions": [],
        }
        assert captured.err == ""

    def test_failure_returns_error_exit_code(self, capsys: pytest.CaptureFixture[str]) -> None:
        code = emit(CommandOutcome.failure("shop items get", RuntimeApiFailure("HTTP 404", 4)), "agent")
        assert code == 4
        assert json.loads(capsys.readouterr().out)["ok"] is False

    def test_human(self, capsys: pytest.CaptureFixture[str]) -> None:
        emit(CommandOutcome.success("shop items delete", None), "human")
        assert "Done." in capsys.readouterr().out


# ---------------------------------------------------------------------------
# Human / agent parity
# ---------------------------------------------------------------------------


class TestRenderingParity:
    RECORDS = [
        {"id": "itm_1", "description": "x" * 100, "price": 3.5, "active": True, "tags": ["a", "b"]},
        {"id": "itm_2", "description": "short [bold]not markup[/bold]", "price": 12, "active": False, "tags": []},
    ]

    def _both(self, result: object) -> tuple[object, str]:
        outcome = CommandOutcome.success("shop items list", result)
        out_console, out, err_console, _ = _consoles()
        out_console.width = 400
        render_human(outcome, out_console, err_console)
        return render_agent(outcome)["result"], out.getvalue()

    def test_table_shows_every_value_unshortened(self) -> None:
        agent_result, text = self._both(self.RECORDS)
        assert agent_result == self.RECORDS
        for record in agent_result:
            for value in record.values():
                assert cell_text(value) in text
        assert "..." not in text

    def test_object_fields_match(self) -> None:
        record = self.RECORDS[0]
        agent_result, text = self._both(record)
        assert agent_result == record
        assert "x" * 100 in text
        assert "true" in text
        assert "3.5" in text

    def test_long_values_wrap_instead_of_being_cut(self) -> None:
        outcome = CommandOutcome.success("shop items get", {"description": "y" * 150})
        out = io.StringIO()
        render_human(outcome, Console(file=out, width=60, color_system=None), _consoles()[2])
        assert out.getvalue().count("y") == 150

    @pytest.mark.parametrize("value, text", [(True, "true"), (3.5, "3.5"), (None, ""), (["a", 1], "a, 1"), ({"k": 1}, '{"k": 1}')])
    def test_cell_text_uses_json_spelling(self, value: object, text: str) -> None:
        assert cell_text(value) == text
