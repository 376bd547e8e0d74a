"""End-to-end tests for the command-line entry point."""

from __future__ import annotations

import io

import pytest
import yaml

import config_import.cli as cli
import config_import.importer as importer_module
from config_import.cluster import Kubectl


class _Terminal(io.StringIO):
    def isatty(self) -> bool:
        return True


@pytest.fixture
def env(settings, live_config, monkeypatch):
    monkeypatch.setenv("KUBECONFIG", str(settings.kubeconfig))
    monkeypatch.setenv("KUBECTL_IMPORT_CACHE_DIR", str(settings.cache_dir))
    return settings


@pytest.fixture
def cluster(monkeypatch, fake_kubectl, make_config):
    fake = fake_kubectl(
        {
            "ns1": {
                "remote": yaml.safe_dump(
                    make_config(
                        "admin@k8s", "k8s", "admin", server="https://remote", current="admin@k8s"
                    )
                )
            }
        }
    )
    monkeypatch.setattr(Kubectl, "run", lambda self, args: fake(args))
    return fake


def test_unrecognized_option_exits_1(env, capsys) -> None:
    assert cli.main(["--bogus"], stdin=_Terminal()) == 1
    assert "unrecognized arguments" in capsys.readouterr().err


def test_help_exits_0(env, capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["--help"])
    assert excinfo.value.code == 0
    assert "--jsonpath" in capsys.readouterr().out


def test_secret_import(env, cluster, capsys) -> None:
    assert cli.main(["ns1", "remote"], stdin=_Terminal()) == 0

    config = yaml.safe_load(env.kubeconfig.read_text())
    assert config["current-context"] == "ctxA-ns1-remote"
    err = capsys.readouterr().err
    assert 'Switched to context "ctxA-ns1-remote"' in err
    assert "Backup saved" in err


def test_missing_secret_exits_3(env, cluster, live_config) -> None:
    before = live_config.read_bytes()

    assert cli.main(["ns1", "missing-secret"], stdin=_Terminal()) == 3

    assert live_config.read_bytes() == before
    assert not env.cache_dir.exists() or list(env.cache_dir.iterdir()) == []


def test_no_namespace_selected_exits_2(env, cluster, monkeypatch) -> None:
    monkeypatch.setattr(importer_module, "select_one", lambda items, prompt: None)
    assert cli.main([], stdin=_Terminal()) == 2


def test_stdin_import(env, make_config) -> None:
    stdin = io.StringIO(yaml.safe_dump(make_config("piped", "p", "p", current="piped")))

    assert cli.main([], stdin=stdin) == 0

    config = yaml.safe_load(env.kubeconfig.read_text())
    assert config["current-context"] == "piped"


def test_file_import(env, tmp_path, make_config) -> None:
    path = tmp_path / "foo"
    path.write_text(yaml.safe_dump(make_config("foo", "f", "f", current="foo")))

    assert cli.main(["-f", str(path)], stdin=_Terminal()) == 0

    config = yaml.safe_load(env.kubeconfig.read_text())
    assert config["current-context"] == "foo"


def test_file_with_positional_is_invalid(env, tmp_path) -> None:
    assert cli.main(["-f", str(tmp_path / "foo"), "ns1"], stdin=_Terminal()) == 1


def test_activation_failure_reports_and_keeps_config(env, live_config, capsys) -> None:
    before = live_config.read_bytes()
    stdin = io.StringIO(yaml.safe_dump({"current-context": "ghost", "clusters": []}))

    assert cli.main([], stdin=stdin) == 4

    assert live_config.read_bytes() == before
    assert "Failed to merge kubeconfig, aborting." in capsys.readouterr().err


def test_dry_run(env, live_config, tmp_path, capsys, make_config) -> None:
    before = live_config.read_bytes()
    path = tmp_path / "foo"
    path.write_text(yaml.safe_dump(make_config("foo", "f", "f", current="foo")))

    assert cli.main(["--dry-run", "-f", str(path)], stdin=_Terminal()) == 0

    assert live_config.read_bytes() == before
    assert "dry-run enabled" in capsys.readouterr().err


def test_delete_cancelled_exits_2(env, live_config, monkeypatch) -> None:
    before = live_config.read_bytes()
    monkeypatch.setattr(importer_module, "select_one", lambda items, prompt: "")

    assert cli.main(["-d"], stdin=_Terminal()) == 2

    assert live_config.read_bytes() == before


def test_delete_context(env, live_config, monkeypatch) -> None:
    monkeypatch.setattr(importer_module, "select_one", lambda items, prompt: items[0])

    assert cli.main(["--delete"], stdin=_Terminal()) == 0

    config = yaml.safe_load(live_config.read_text())
    assert config["contexts"] == []


def test_edit_opens_all_kubeconfigs(monkeypatch) -> None:
    calls: list = []

    class _Result:
        returncode = 0

    def _run(cmd):
        calls.append(cmd)
        return _Result()

    monkeypatch.setenv("KUBECONFIG", "/tmp/a:/tmp/b")
    monkeypatch.setenv("EDITOR", "vim")
    monkeypatch.setattr(cli.subprocess, "run", _run)

    assert cli.main(["-e"]) == 0
    assert calls == [["vim", "-O", "/tmp/a", "/tmp/b"]]
