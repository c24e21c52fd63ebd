"""Tests for the formpipe CLI."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from formpipe.cli import (
    Codes,
    Install,
    ResolveIp,
    Submit,
    install_config,
    load_submission,
    main,
    resolve_ip,
    show_codes,
    show_result,
    submit,
)
from formpipe.config import FormPipeConfig, SmtpConfig, TrustPolicy
from formpipe.pipeline.envelope import build_result
from formpipe.utils import parse_header_args


@pytest.fixture
def submission(tmp_path: Path) -> Path:
    path = tmp_path / "message.yaml"
    path.write_text(
        "name: Ada\n"
        "email: ada@example.com\n"
        "subject: Hello\n"
        "message: Hi there\n"
        "company: Analytical Engines\n"
    )
    return path


@pytest.fixture
def smtp_config() -> FormPipeConfig:
    return FormPipeConfig(smtp=SmtpConfig(host="smtp.example.com", **{"from": "no-reply@example.com"}, to="inbox@example.com"))


class TestInstallConfig:
    """Test suite for install_config function."""

    def test_fresh_install(self, tmp_path: Path, capsys) -> None:
        config_dir = tmp_path / "formpipe"

        install_config(config_dir)

        assert (config_dir / "formpipe.yaml").exists()
        captured = capsys.readouterr()
        assert "Copied formpipe.yaml" in captured.out
        assert "Installation complete!" in captured.out

    def test_existing_without_force(self, tmp_path: Path, capsys) -> None:
        with pytest.raises(SystemExit) as exc_info:
            install_config(tmp_path)

        assert exc_info.value.code == 1
        assert "Use --force to overwrite" in capsys.readouterr().out

    def test_force_overwrites(self, tmp_path: Path) -> None:
        (tmp_path / "formpipe.yaml").write_text("old: config")

        install_config(tmp_path, force=True)

        assert "formpipe:" in (tmp_path / "formpipe.yaml").read_text()

    def test_missing_templates(self, tmp_path: Path, capsys) -> None:
        with patch("formpipe.cli.get_templates_dir", side_effect=RuntimeError("Templates directory not found")):
            with pytest.raises(SystemExit) as exc_info:
                install_config(tmp_path / "new")

        assert exc_info.value.code == 1
        assert "Templates directory not found" in capsys.readouterr().err


class TestLoadSubmission:
    def test_json_file(self, tmp_path: Path) -> None:
        path = tmp_path / "message.json"
        path.write_text(json.dumps({"name": "Ada", "message": "Hi"}))
        assert load_submission(path) == {"name": "Ada", "message": "Hi"}

    def test_non_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "message.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            load_submission(path)


class TestSubmit:
    """Test running a submission through a configured pipeline."""

    def test_sent(self, submission: Path, smtp_config: FormPipeConfig) -> None:
        with patch("formpipe.mail.smtp.SmtpSender.send", return_value="<id@example.com>") as mock_send:
            result = submit(smtp_config, submission, body_fields=["company"])

        assert result.ok
        assert result.code == "OK_SENT"
        message = mock_send.call_args[0][0]
        assert message.to == "inbox@example.com"
        assert message.subject == "Hello"
        assert "company: Analytical Engines" in message.text

    def test_no_sender(self, submission: Path) -> None:
        result = submit(FormPipeConfig(), submission)

        assert not result.ok
        assert result.code == "ERR_NO_SENDER"

    def test_validation_failure(self, tmp_path: Path, smtp_config: FormPipeConfig) -> None:
        path = tmp_path / "message.yaml"
        path.write_text("name: Ada\nmessage: Hi\n")
        config = FormPipeConfig(
            smtp=smtp_config.smtp,
            validators=[
                {
                    "label": "required",
                    "validator": "formpipe.validators.fields.required",
                    "params": {"fields": ["name", "email"]},
                }
            ],
        )

        result = submit(config, path)

        assert result.code == "EMAIL_REQUIRED"
        assert result.meta["validators"]["required"][0]["status"] == "FAIL"

    def test_client_address_from_trusted_proxy(self, submission: Path) -> None:
        config = FormPipeConfig(trusted_proxy=TrustPolicy(trusted_proxies=("10.0.0.0/8",)))

        result = submit(config, submission, remote_addr="10.1.2.3", headers={"X-Forwarded-For": "8.8.8.8"})

        assert result.meta["client"]["ip"] == "8.8.8.8"


class TestShowResult:
    def test_json(self, capsys) -> None:
        show_result(build_result("OK_SENT", "Sent", {"a": 1}), as_json=True)

        data = json.loads(capsys.readouterr().out)
        assert data == {"ok": True, "code": "OK_SENT", "message": "Sent", "meta": {"a": 1}}

    def test_panel(self, capsys) -> None:
        show_result(build_result("ERR_NO_SENDER", "No sender"))
        assert "ERR_NO_SENDER" in capsys.readouterr().out


class TestResolveIp:
    """Test client address resolution from the CLI."""

    def test_untrusted_peer(self) -> None:
        assert resolve_ip(FormPipeConfig(), "8.8.8.8", {"X-Forwarded-For": "1.1.1.1"}) == "8.8.8.8"

    def test_trusted_override(self) -> None:
        ip = resolve_ip(FormPipeConfig(), "10.0.0.1", {"X-Forwarded-For": "1.1.1.1"}, trusted=["10.0.0.0/8"])
        assert ip == "1.1.1.1"

    def test_private_rejected_unless_allowed(self) -> None:
        assert resolve_ip(FormPipeConfig(), "192.168.1.10", {}) is None
        assert resolve_ip(FormPipeConfig(), "192.168.1.10", {}, allow_private=True) == "192.168.1.10"


class TestShowCodes:
    def test_json_includes_core_and_custom(self, capsys) -> None:
        show_codes(FormPipeConfig(messages={"SPAM_DETECTED": {"message": "Spam.", "http": 400}}), as_json=True)

        data = json.loads(capsys.readouterr().out)
        assert "OK_SENT" in data
        assert "ERR_SMTP_AUTH" in data
        assert data["SPAM_DETECTED"]["message"] == "Spam."
        assert data["SPAM_DETECTED"]["http"] == 400


class TestParseHeaderArgs:
    def test_parse(self) -> None:
        assert parse_header_args(["X-Forwarded-For: 1.1.1.1", "bogus", "Referer:https://a.example"]) == {
            "X-Forwarded-For": "1.1.1.1",
            "Referer": "https://a.example",
        }


class TestMain:
    """Test the main dispatch."""

    def test_install(self, tmp_path: Path) -> None:
        config_dir = tmp_path / "cfg"

        main(Install(), config_dir=config_dir)

        assert (config_dir / "formpipe.yaml").exists()

    def test_submit_exit_codes(self, tmp_path: Path, submission: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(Submit(file=submission, json=True), config_dir=tmp_path / "empty")
        assert exc_info.value.code == 1

        (tmp_path / "formpipe.yaml").write_text(
            "formpipe:\n  smtp:\n    host: smtp.example.com\n    from: a@example.com\n    to: b@example.com\n"
        )
        with patch("formpipe.mail.smtp.SmtpSender.send", return_value="<id@example.com>"):
            with pytest.raises(SystemExit) as exc_info:
                main(Submit(file=submission, json=True), config_dir=tmp_path)
        assert exc_info.value.code == 0

    def test_submit_missing_file(self, tmp_path: Path, capsys) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(Submit(file=tmp_path / "missing.yaml"), config_dir=tmp_path)

        assert exc_info.value.code == 1
        assert "Error reading submission" in capsys.readouterr().err

    def test_resolve_ip(self, tmp_path: Path, capsys) -> None:
        main(ResolveIp(remote_addr="8.8.8.8"), config_dir=tmp_path)
        assert capsys.readouterr().out.strip() == "8.8.8.8"

    def test_resolve_ip_none(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(ResolveIp(remote_addr="not-an-ip"), config_dir=tmp_path)
        assert exc_info.value.code == 1

    def test_codes(self, tmp_path: Path, capsys) -> None:
        main(Codes(json=True), config_dir=tmp_path)
        assert "ERR_UNEXPECTED" in json.loads(capsys.readouterr().out)
