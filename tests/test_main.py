"""
Tests for the command line entry point.
"""
import json

from hellowork_scraper.main import EXIT_CONFIG_ERROR, build_input, build_parser, main


class TestBuildInput:

    def test_flags_override_file(self, tmp_path):
        input_file = tmp_path / "input.json"
        input_file.write_text(json.dumps({"keyword": "comptable", "results_wanted": 50}), encoding='utf-8')

        args = build_parser().parse_args([
            "--input", str(input_file), "--keyword", "developer", "--no-details",
            "--start-url", "https://www.hellowork.com/fr-fr/emploi/recherche.html?k=a",
        ])
        raw = build_input(args)

        assert raw["keyword"] == "developer"
        assert raw["results_wanted"] == 50
        assert raw["collectDetails"] is False
        assert raw["startUrls"] == ["https://www.hellowork.com/fr-fr/emploi/recherche.html?k=a"]


class TestMain:

    def test_invalid_start_url_exits_with_config_error(self, tmp_path):
        code = main(["--start-url", "https://example.com/jobs", "--output", str(tmp_path / "out.jsonl")])
        assert code == EXIT_CONFIG_ERROR

    def test_unreadable_input_file(self, tmp_path):
        assert main(["--input", str(tmp_path / "missing.json")]) == EXIT_CONFIG_ERROR
