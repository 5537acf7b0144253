"""
Tests for the command line.
"""

from uuid import uuid4

import pytest

from causal_nba_agent.main import _reads_earlier_runs, build_parser, run_command


class TestCommandLine:
    """Tests for argument handling in main."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "argv",
        [
            ["confirm", "1", "H1"],
            ["show", str(uuid4())],
            ["latest", "1"],
            ["recommend", "1", "--session-id", str(uuid4())],
        ],
    )
    async def test_memory_store_rejects_commands_needing_earlier_runs(
        self,
        argv: list[str],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        with pytest.raises(SystemExit) as exc_info:
            await run_command(argv)

        assert exc_info.value.code == 2
        assert "use --store sql" in capsys.readouterr().err

    @pytest.mark.parametrize("argv", [["investigate", "1"], ["recommend", "1", "--watch"]])
    def test_fresh_runs_work_in_memory(self, argv: list[str]) -> None:
        args = build_parser().parse_args(argv)

        assert args.store == "memory"
        assert _reads_earlier_runs(args) is False

    def test_sql_store_allows_follow_up_commands(self) -> None:
        args = build_parser().parse_args(["--store", "sql", "latest", "1"])

        assert args.store == "sql"
        assert _reads_earlier_runs(args) is True
