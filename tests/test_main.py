"""Tests for the command line entry point."""

import json

import pytest

import main


class TestParseArgs:

    def test_process_requires_one_source(self):
        with pytest.raises(SystemExit):
            main.parse_args(["process", "--url", "https://acme.com", "--text", "hi"])

    def test_export_defaults(self):
        args = main.parse_args(["export", "acme.com"])
        assert args.output == "llms.txt"
        assert args.sort_by == "importance"
        assert args.max_pages == 50


class TestMain:

    @pytest.mark.asyncio
    async def test_process_text_in_memory(self, capsys):
        code = await main.main([
            "--memory", "process", "--no-llm", "--min-importance", "5",
            "--text", "Alice works at Acme. Acme builds widgets.",
        ])

        assert code == 0
        output = json.loads(capsys.readouterr().out)
        assert {e["text"] for e in output["entities"]} == {"Alice", "Acme"}
        assert output["relationships"][0]["type"] == "WORKS_FOR"

    @pytest.mark.asyncio
    async def test_export_placeholder_in_memory(self, tmp_path):
        target = tmp_path / "llms.txt"

        code = await main.main(["--memory", "export", "acme.com", "--output", str(target)])

        assert code == 0
        assert target.read_text(encoding="utf-8").startswith("# acme.com")

    @pytest.mark.asyncio
    async def test_bootstrap_in_memory_is_noop(self):
        assert await main.main(["--memory", "bootstrap"]) == 0

    @pytest.mark.asyncio
    async def test_invalid_url_exit_code(self):
        assert await main.main(["--memory", "process", "--no-llm", "--url", "not a url"]) == 1
