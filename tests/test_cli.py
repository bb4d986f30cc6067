"""Command line: ``start`` and ``search`` end to end."""

from __future__ import annotations

import logging
import signal
from pathlib import Path
from typing import Generator

import pytest

from conftest import CORPUS, insert_rows
from guugle.cli import build_parser, format_result, main
from guugle.crawler.fetcher import HtmlDocument, HtmlFetcher
from guugle.ranking.ranker import RankedPage
from guugle.storage.database import Page, PageStore


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def isolated_run(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Run every command in an empty directory and undo its logging setup."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(signal, "signal", lambda signum, handler: None)

    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)


@pytest.fixture()
def corpus_path(tmp_path: Path) -> Path:
    path = tmp_path / "corpus.db3"
    PageStore.open(str(path)).close()
    insert_rows(path, CORPUS)
    return path


class OfflineFetcher:
    """Serves two linked pages without touching the network."""

    pages = {
        "http://seed.test/": '<!DOCTYPE html><a href="http://seed.test/next">next</a>',
        "http://seed.test/next": "<!DOCTYPE html><p>team crystal</p>",
    }

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass

    async def get_html(self, url):
        return HtmlDocument(url=url, text=self.pages[url])


# ---------------------------------------------------------------------------
# parser
# ---------------------------------------------------------------------------

class TestParser:
    def test_search_defaults(self) -> None:
        args = build_parser().parse_args(["search", "crystal"])
        assert args.command == "search"
        assert args.search_word == "crystal"
        assert args.amount == 10
        assert args.config == "config.yaml"

    def test_search_amount(self) -> None:
        args = build_parser().parse_args(["search", "team crystal", "25"])
        assert args.amount == 25

    def test_start_options(self) -> None:
        args = build_parser().parse_args(
            ["start", "--seed-urls", "a.ch", "b.ch", "--threads", "3", "-v"]
        )
        assert args.seed_urls == ["a.ch", "b.ch"]
        assert args.threads == 3
        assert args.verbose

    @pytest.mark.parametrize("argv", [
        ["start", "--threads", "0"],
        ["start", "--max-pages", "-1"],
        ["search", "team", "0"],
    ])
    def test_counts_must_be_positive(self, argv) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(argv)

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


# ---------------------------------------------------------------------------
# search
# ---------------------------------------------------------------------------

class TestSearch:
    def test_ranked_output(self, corpus_path: Path, capsys: pytest.CaptureFixture) -> None:
        assert main(["search", "team", "--db-path", str(corpus_path)]) == 0

        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 3
        assert lines[0].startswith("0: rank=7 id=2 url=help.ch ")
        assert lines[1].startswith("1: rank=6 id=1 url=test.ch ")
        assert lines[2].startswith("2: rank=3 id=4 url=ep.ch ")

    def test_amount_limits_output(self, corpus_path: Path,
                                  capsys: pytest.CaptureFixture) -> None:
        assert main(["search", "team", "2", "--db-path", str(corpus_path)]) == 0
        assert len(capsys.readouterr().out.splitlines()) == 2

    def test_no_results(self, corpus_path: Path, capsys: pytest.CaptureFixture) -> None:
        assert main(["search", "nothing-here", "--db-path", str(corpus_path)]) == 0
        assert capsys.readouterr().out == ""

    def test_missing_store(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        missing = tmp_path / "missing.db3"
        assert main(["search", "team", "--db-path", str(missing)]) == 1
        assert "not found" in capsys.readouterr().err
        assert not missing.exists()

    def test_store_path_from_config(self, tmp_path: Path, corpus_path: Path,
                                    capsys: pytest.CaptureFixture) -> None:
        config = tmp_path / "custom.yaml"
        config.write_text(f"database:\n  path: {corpus_path}\nlogging:\n  file: null\n")
        assert main(["search", "crystal", "--config", str(config)]) == 0
        assert len(capsys.readouterr().out.splitlines()) == 3

    def test_named_config_must_exist(self, capsys: pytest.CaptureFixture) -> None:
        assert main(["search", "team", "--config", "nope.yaml"]) == 1
        assert "Configuration error" in capsys.readouterr().err

    def test_invalid_config(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        (tmp_path / "config.yaml").write_text("crawler:\n  worker_count: 0\n")
        assert main(["search", "team"]) == 1
        assert "worker_count" in capsys.readouterr().err

    def test_unusable_store(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        broken = tmp_path / "broken.db3"
        broken.write_bytes(b"definitely not sqlite " * 64)
        assert main(["search", "team", "--db-path", str(broken)]) == 1
        assert "Error" in capsys.readouterr().err


class TestFormatResult:
    def test_preview_is_truncated(self) -> None:
        page = Page(id=6, visited=True, url="hre.he", content="x" * 200,
                    links_to="test.ch:::lp.ch")
        line = format_result(0, RankedPage(page=page, rank=40))
        assert line.startswith("0: rank=40 id=6 url=hre.he visited=True in_use=False ")
        assert "links_to='test.ch:::lp.ch'" in line
        assert "x" * 80 + "..." in line
        assert "x" * 81 not in line

    def test_unvisited_page(self) -> None:
        page = Page(id=1, visited=False, url="a.ch")
        line = format_result(3, RankedPage(page=page, rank=1))
        assert "links_to=None" in line
        assert "content=''" in line


# ---------------------------------------------------------------------------
# start
# ---------------------------------------------------------------------------

class TestStart:
    @pytest.fixture(autouse=True)
    def offline(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(HtmlFetcher, "from_config",
                            classmethod(lambda cls, config: OfflineFetcher()))

    def test_crawl_then_search(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        db_path = tmp_path / "crawl.db3"
        assert main(["start", "--seed-urls", "http://seed.test/",
                     "--threads", "2", "--db-path", str(db_path)]) == 0

        with PageStore.open(str(db_path)) as store:
            pages = store.all_pages()
        assert [p.url for p in pages] == ["http://seed.test/", "http://seed.test/next"]
        assert all(p.visited and not p.in_use for p in pages)

        assert main(["search", "crystal", "--db-path", str(db_path)]) == 0
        out = capsys.readouterr().out
        assert "url=http://seed.test/next" in out

    def test_default_store_location(self, tmp_path: Path) -> None:
        assert main(["start", "--seed-urls", "http://seed.test/next"]) == 0
        assert (tmp_path / "database.db3").exists()
        assert (tmp_path / "logs" / "guugle.log").exists()

    def test_resume_without_seeds(self, tmp_path: Path) -> None:
        db_path = tmp_path / "crawl.db3"
        with PageStore.open(str(db_path)) as store:
            store.insert_unvisited("http://seed.test/next")

        assert main(["start", "--db-path", str(db_path)]) == 0
        with PageStore.open(str(db_path)) as store:
            assert store.is_frontier_empty()

    def test_max_pages(self, tmp_path: Path) -> None:
        db_path = tmp_path / "crawl.db3"
        assert main(["start", "--seed-urls", "http://seed.test/", "--threads", "1",
                     "--max-pages", "1", "--db-path", str(db_path)]) == 0
        with PageStore.open(str(db_path)) as store:
            assert store.count_frontier() == 1
