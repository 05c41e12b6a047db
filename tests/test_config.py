"""Tests for settings and run input parsing."""

import json
import sys

import pytest

from zameen_finder.config import RunInput, Settings


class TestSettings:

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("ZAMEEN_MAX_CONCURRENCY", "9")
        monkeypatch.setenv("ZAMEEN_DEFAULT_CURRENCY", "USD")
        settings = Settings()
        assert settings.max_concurrency == 9
        assert settings.default_currency == "USD"

    def test_defaults(self):
        settings = Settings()
        assert settings.base_url == "https://www.zameen.com"
        assert settings.max_requests_per_minute == 120


class TestRunInput:

    def test_defaults(self):
        run_input = RunInput()
        assert run_input.results_wanted == 100
        assert run_input.max_pages == 20
        assert run_input.scrape_details is True
        assert not run_input.has_query

    @pytest.mark.parametrize("value,expected", [
        ("25", 25),
        (7.9, 7),
        (0, 1),
        (-3, 1),
        ("max", sys.maxsize),
        (None, sys.maxsize),
        (float("nan"), sys.maxsize),
    ])
    def test_results_wanted(self, value, expected):
        assert RunInput(results_wanted=value).results_wanted == expected

    @pytest.mark.parametrize("value,expected", [("3", 3), ("all", 20), (None, 20), (0, 1)])
    def test_max_pages(self, value, expected):
        assert RunInput(max_pages=value).max_pages == expected

    def test_start_urls_accept_objects(self):
        run_input = RunInput(start_urls=[{"url": " https://www.zameen.com/a "}, "https://www.zameen.com/b", {"x": 1}])
        assert run_input.start_urls == ["https://www.zameen.com/a", "https://www.zameen.com/b"]

    def test_query_text_stripped(self):
        run_input = RunInput(keyword="  DHA ", location=None)
        assert run_input.keyword == "DHA"
        assert run_input.location == ""
        assert run_input.has_query

    def test_proxy_urls(self):
        assert RunInput(proxy_configuration={"proxy_urls": ["http://p1"]}).proxy_urls == ["http://p1"]
        assert RunInput(proxy_configuration={"proxyUrls": ["http://p2"]}).proxy_urls == ["http://p2"]
        assert RunInput().proxy_urls == []

    def test_from_yaml_file(self, tmp_path):
        path = tmp_path / "input.yaml"
        path.write_text(
            "startUrls:\n"
            "  - url: https://www.zameen.com/Homes/Lahore-1-1.html\n"
            "resultsWanted: 5\n"
            "maxPages: 2\n"
            "scrapeDetails: false\n"
        )
        run_input = RunInput.from_file(path)
        assert run_input.start_urls == ["https://www.zameen.com/Homes/Lahore-1-1.html"]
        assert run_input.results_wanted == 5
        assert run_input.max_pages == 2
        assert run_input.scrape_details is False

    def test_from_json_file(self, tmp_path):
        path = tmp_path / "input.json"
        path.write_text(json.dumps({"keyword": "Bahria Town", "location": "Lahore", "results_wanted": "max"}))
        run_input = RunInput.from_file(path)
        assert run_input.keyword == "Bahria Town"
        assert run_input.results_wanted == sys.maxsize
