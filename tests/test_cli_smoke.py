import logging
from pathlib import Path

from site_fixtures import write, write_post, write_templates
from suji import cli


def _write_config(root: Path, **extra_lines: str) -> Path:
    lines = [
        "source_dir: site",
        "output_dir: public",
        "sitename: Smoke",
        "site_url: https://smoke.example",
        "routes:",
        "  blogpost: /posts/{slug}/",
        "  tag: /tags/{tag}/",
        "sources:",
        "  - {glob: 'templates/*.html', kind: template, root: templates}",
        "  - {glob: 'posts/*.md', kind: blog_post}",
    ]
    lines.extend(f"{key}: {value}" for key, value in extra_lines.items())
    config_path = root / "site.yaml"
    config_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return config_path


def test_cli_list_systems_smoke(capsys):
    rc = cli.main(["list-systems"])
    assert rc == 0

    out = capsys.readouterr().out
    assert "1.config_processing\twave 1\tcreate_source_loaders" in out
    assert "spawn_tag_pages" in out
    assert "publish_output" in out


def test_cli_build_smoke(tmp_path, capsys):
    write_templates(tmp_path / "site")
    write_post(tmp_path / "site", "hello.md", title="Hello", date="2024-01-01", tags=["python"])
    config_path = _write_config(tmp_path)

    rc = cli.main(["build", str(config_path), "--log-file", str(tmp_path / "logs" / "build.log")])

    assert rc == 0
    assert (tmp_path / "public" / "posts" / "hello" / "index.html").is_file()
    assert (tmp_path / "public" / "tags" / "python" / "index.html").is_file()
    log_text = (tmp_path / "logs" / "build.log").read_text(encoding="utf-8")
    assert "Stage: persistence" in log_text
    assert capsys.readouterr().err.count("load:") == 0


def test_cli_build_reports_faults_and_exits_non_zero(tmp_path, capsys):
    write_templates(tmp_path / "site")
    write(tmp_path / "site" / "posts" / "broken.md", "no front matter\n")
    config_path = _write_config(tmp_path)

    rc = cli.main(["build", str(config_path)])

    assert rc == cli.EXIT_FAULTS
    err = capsys.readouterr().err
    assert "load: posts/broken.md: Missing front matter metadata" in err


def test_cli_build_rejects_invalid_config(tmp_path, capsys):
    config_path = _write_config(tmp_path, colour="blue")

    rc = cli.main(["build", str(config_path)])

    assert rc == cli.EXIT_CONFIG
    assert "Unknown config keys: colour" in capsys.readouterr().err


def test_cli_build_missing_config_file(tmp_path, capsys):
    rc = cli.main(["build", str(tmp_path / "nope.yaml")])

    assert rc == cli.EXIT_CONFIG
    assert "Missing base config file" in capsys.readouterr().err


def _run_loggers() -> set[str]:
    return {name for name in logging.Logger.manager.loggerDict if name.startswith("suji.run.")}


def test_repeated_rebuilds_share_one_logger(tmp_path):
    write_templates(tmp_path / "site")
    write_post(tmp_path / "site", "hello.md", title="Hello", date="2024-01-01", tags=["python"])
    config_path = _write_config(tmp_path)
    before = _run_loggers()

    for _ in range(3):
        assert cli.build_once(str(config_path), logger_name="watch") == cli.EXIT_OK

    assert _run_loggers() - before <= {"suji.run.watch"}
    assert logging.getLogger("suji.run.watch").handlers == []
