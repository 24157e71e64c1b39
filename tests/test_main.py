"""
Tests for the threadwatch command line.
"""

import json
import logging
import os
from unittest.mock import patch

import pytest
from fastapi import FastAPI

from threadwatch.main import build_parser, main


@pytest.fixture
def env(tmp_path):
    """Environment pointing the CLI at files under tmp_path."""
    return {
        "CONFIG_PATH": str(tmp_path / "config.json"),
        "LOG_DIR": str(tmp_path / "logs"),
        "DB_TYPE": "memory",
    }


def run(env, tmp_path, *args):
    argv = ["--env-file", str(tmp_path / "missing.env"), "--log-level", "ERROR", *args]
    with patch.dict(os.environ, env, clear=True):
        return main(argv)


def write_config(path, data):
    with open(path, "w", encoding="utf-8") as f:
        json.dump({"config": data}, f)


class TestCheckConfig:
    def test_valid_config(self, env, tmp_path, capsys):
        write_config(env["CONFIG_PATH"], {"urls": ["https://a/feed.rss"], "notice_type": "wechat",
                                          "wechat_key": "XZ"})

        assert run(env, tmp_path, "check-config") == 0
        out = capsys.readouterr().out
        assert out.startswith("ok: 1 feed(s), 0 thread URL(s), notice_type=wechat")
        assert "ai_filter=off" in out

    def test_incomplete_config(self, env, tmp_path, capsys):
        write_config(env["CONFIG_PATH"], {"notice_type": "custom"})

        assert run(env, tmp_path, "check-config") == 1
        assert "invalid:" in capsys.readouterr().err

    def test_unparseable_config(self, env, tmp_path, capsys):
        with open(env["CONFIG_PATH"], "w", encoding="utf-8") as f:
            f.write("[]")

        assert run(env, tmp_path, "check-config") == 1


class TestRunOnce:
    def test_prints_cycle_report(self, env, tmp_path, capsys):
        write_config(env["CONFIG_PATH"], {"notice_type": "wechat", "wechat_key": "XZ"})

        assert run(env, tmp_path, "run-once") == 0
        report = json.loads(capsys.readouterr().out)
        assert report["counters"]["threads_seen"] == 0
        assert report["errors"] == []
        assert report["finished_at"] is not None

    def test_incomplete_config_fails(self, env, tmp_path, capsys):
        write_config(env["CONFIG_PATH"], {"notice_type": "telegram"})

        assert run(env, tmp_path, "run-once") == 1
        assert "error:" in capsys.readouterr().err


class TestParser:
    def test_bad_port_env_fails(self, env, tmp_path, capsys):
        env["PORT"] = "not-a-port"

        assert run(env, tmp_path, "check-config") == 1

    def test_command_is_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_serve_options(self):
        args = build_parser().parse_args(["serve", "--host", "127.0.0.1", "--port", "9000"])

        assert args.host == "127.0.0.1"
        assert args.port == 9000


def console_level():
    handlers = [h for h in logging.getLogger().handlers if not isinstance(h, logging.FileHandler)]
    return handlers[0].level


class TestServe:
    def test_serves_an_app_instance_at_cli_log_level(self, env, tmp_path):
        with patch("uvicorn.run") as mock_run:
            assert run(env, tmp_path, "serve", "--port", "9000") == 0

        served = mock_run.call_args.args[0]
        assert isinstance(served, FastAPI)
        assert mock_run.call_args.kwargs["port"] == 9000
        assert mock_run.call_args.kwargs["log_config"] is None
        assert console_level() == logging.ERROR

    def test_log_level_falls_back_to_env(self, env, tmp_path):
        env["LOG_LEVEL"] = "WARNING"
        with patch.dict(os.environ, env, clear=True), patch("uvicorn.run"):
            assert main(["--env-file", str(tmp_path / "missing.env"), "serve"]) == 0

        assert console_level() == logging.WARNING
