"""Tests for TOML config file loading and option precedence."""

from __future__ import annotations

import argparse
from pathlib import Path

import pytest

from devicesh.cli import build_parser, load_config, resolve_options
from devicesh.namespace import DEFAULT_LIBEXEC, DEFAULT_SYSCONF


class TestLoadConfig:
    def test_missing_config_returns_empty(self, tmp_path: Path) -> None:
        assert load_config(None, tmp_path) == {}

    def test_explicit_path(self, tmp_path: Path) -> None:
        cfg = tmp_path / "custom.toml"
        cfg.write_text('libexec = "/opt/device"\n')
        assert load_config(cfg, tmp_path) == {"libexec": "/opt/device"}

    def test_explicit_missing_path(self, tmp_path: Path) -> None:
        assert load_config(tmp_path / "nope.toml", tmp_path) == {}

    def test_auto_discover_in_home(self, tmp_path: Path) -> None:
        (tmp_path / ".device.toml").write_text('[history]\nenabled = false\n')
        assert load_config(None, tmp_path) == {"history": {"enabled": False}}


def _resolve(args: list[str], environ: dict[str, str]):
    return resolve_options(build_parser().parse_args(args), environ)


class TestDefaults:
    def test_defaults(self, tmp_path: Path) -> None:
        opts = _resolve([], {"HOME": str(tmp_path)})
        assert opts.libexec == DEFAULT_LIBEXEC
        assert opts.sysconf == DEFAULT_SYSCONF
        assert opts.pathext == ()
        assert opts.history_file == tmp_path / ".device_history"
        assert opts.input_file is None
        assert opts.commands == []
        assert opts.debug is False


class TestPrecedence:
    def test_config_over_defaults(self, tmp_path: Path) -> None:
        (tmp_path / ".device.toml").write_text('libexec = "/cfg/libexec"\nsysconf = "/cfg/sysconf"\n')
        opts = _resolve([], {"HOME": str(tmp_path)})
        assert opts.libexec == Path("/cfg/libexec")
        assert opts.sysconf == Path("/cfg/sysconf")

    def test_environment_over_config(self, tmp_path: Path) -> None:
        (tmp_path / ".device.toml").write_text('libexec = "/cfg/libexec"\n')
        env = {"HOME": str(tmp_path), "DEVICE_LIBEXEC": "/env/libexec"}
        assert _resolve([], env).libexec == Path("/env/libexec")

    def test_cli_over_environment(self, tmp_path: Path) -> None:
        env = {"HOME": str(tmp_path), "DEVICE_SYSCONF": "/env/sysconf"}
        assert _resolve(["--sysconf", "/cli/sysconf"], env).sysconf == Path("/cli/sysconf")

    def test_explicit_config_file(self, tmp_path: Path) -> None:
        cfg = tmp_path / "other.toml"
        cfg.write_text('sysconf = "/other"\n')
        opts = _resolve(["--config", str(cfg)], {"HOME": str(tmp_path)})
        assert opts.sysconf == Path("/other")

    def test_config_path_expands_user(self, tmp_path: Path) -> None:
        (tmp_path / ".device.toml").write_text('libexec = "~/tree"\n')
        opts = _resolve([], {"HOME": str(tmp_path)})
        assert not str(opts.libexec).startswith("~")


class TestPathext:
    def test_from_config(self, tmp_path: Path) -> None:
        (tmp_path / ".device.toml").write_text('pathext = [".sh", "", ".py"]\n')
        assert _resolve([], {"HOME": str(tmp_path)}).pathext == (".sh", ".py")

    def test_environment_over_config(self, tmp_path: Path) -> None:
        (tmp_path / ".device.toml").write_text('pathext = [".sh"]\n')
        env = {"HOME": str(tmp_path), "PATHEXT": ".cmd;.bat"}
        assert _resolve([], env).pathext == (".cmd", ".bat")

    def test_invalid(self, tmp_path: Path) -> None:
        (tmp_path / ".device.toml").write_text('pathext = ".sh"\n')
        with pytest.raises(argparse.ArgumentTypeError, match="pathext"):
            _resolve([], {"HOME": str(tmp_path)})


class TestHistory:
    def test_config_file(self, tmp_path: Path) -> None:
        (tmp_path / ".device.toml").write_text('[history]\nfile = "/var/tmp/hist"\n')
        assert _resolve([], {"HOME": str(tmp_path)}).history_file == Path("/var/tmp/hist")

    def test_config_disabled(self, tmp_path: Path) -> None:
        (tmp_path / ".device.toml").write_text("[history]\nenabled = false\n")
        assert _resolve([], {"HOME": str(tmp_path)}).history_file is None

    def test_cli_disabled(self, tmp_path: Path) -> None:
        assert _resolve(["--no-history"], {"HOME": str(tmp_path)}).history_file is None

    def test_invalid_file(self, tmp_path: Path) -> None:
        (tmp_path / ".device.toml").write_text("[history]\nfile = 1\n")
        with pytest.raises(argparse.ArgumentTypeError, match="file"):
            _resolve([], {"HOME": str(tmp_path)})
