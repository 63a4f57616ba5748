"""
Unit tests for the command-line interface.

``main`` is driven with argv lists; the GitHub session is swapped for the
in-memory fake so no network is touched.
"""

import json
from unittest.mock import Mock, patch

import pytest
from botocore.exceptions import NoCredentialsError

from dax_udf_sync.cli import EXIT_ERROR, EXIT_OK, EXIT_OUT_OF_SYNC, build_parser, main
from tests.conftest import REPO


@pytest.fixture
def github(fake_github, monkeypatch):
    monkeypatch.setenv("GITHUB_TOKEN", "ghp_cli_test_token")
    monkeypatch.setenv("GITHUB_REPOSITORY", REPO)
    with patch("dax_udf_sync.github.client.build_session", return_value=fake_github.session) as build:
        yield fake_github
    build.assert_called_with("ghp_cli_test_token")


@pytest.fixture
def functions_dir(tmp_path):
    root = tmp_path / "local"
    root.mkdir()
    (root / "AddTax.dax").write_text("(amount : NUMERIC) =>\n\tamount * 1.2\n", encoding="utf-8")
    (root / "Local.Double.dax").write_text("(x : INT64) => x * 2\n", encoding="utf-8")
    return root


class TestParser:
    """Argument parsing."""

    def test_model_and_functions_dir_are_exclusive(self, capsys):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--model", "a", "--functions-dir", "b", "status"])

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_status_options(self):
        args = build_parser().parse_args(["--path", "udf", "status", "A", "B", "--format", "json", "--check"])

        assert args.functions_path == "udf"
        assert args.names == ["A", "B"]
        assert args.format == "json"
        assert args.check


def test_scan_lists_remote_files(github, capsys):
    assert main(["scan"]) == EXIT_OK

    lines = capsys.readouterr().out.splitlines()
    assert [line.split("\t")[0] for line in lines] == [
        "functions/Math/AddTax.dax",
        "functions/Text/Greeting.dax",
    ]


def test_status_table(github, functions_dir, capsys):
    code = main(["--functions-dir", str(functions_dir), "status"])

    out = capsys.readouterr().out
    assert code == EXIT_OK
    assert "IN SYNC" in out
    assert "LOCAL ONLY" in out
    assert "3 functions, 2 out of sync (contoso/dax-functions@main)" in out


def test_status_check_exit_code(github, functions_dir):
    assert main(["--functions-dir", str(functions_dir), "status", "--check"]) == EXIT_OUT_OF_SYNC
    assert main(["--functions-dir", str(functions_dir), "status", "AddTax", "--check"]) == EXIT_OK


def test_status_json(github, functions_dir, capsys):
    main(["--functions-dir", str(functions_dir), "status", "--format", "json"])

    report = json.loads(capsys.readouterr().out)
    assert {f["name"]: f["status"] for f in report["functions"]} == {
        "AddTax": "in_sync",
        "Greeting": "remote_only",
        "Local.Double": "local_only",
    }


def test_status_markdown(github, functions_dir, capsys):
    main(["--functions-dir", str(functions_dir), "status", "--format", "markdown"])

    assert capsys.readouterr().out.startswith("# Function Sync Report: contoso/dax-functions@main")


def test_status_writes_report_files(github, functions_dir, tmp_path, capsys):
    out_dir = tmp_path / "reports"

    assert main(["--functions-dir", str(functions_dir), "status", "--output", str(out_dir)]) == EXIT_OK

    report = json.loads((out_dir / "sync-status.json").read_text(encoding="utf-8"))
    assert report["statistics"]["total_functions"] == 3
    assert (out_dir / "sync-status.md").read_text(encoding="utf-8").startswith("# Function Sync Report")
    assert "LOCAL ONLY" in capsys.readouterr().out


def test_status_table_is_plain_when_not_a_terminal(github, functions_dir, capsys):
    main(["--functions-dir", str(functions_dir), "status"])

    assert "\033[" not in capsys.readouterr().out


def test_push(github, functions_dir, capsys):
    code = main(["--functions-dir", str(functions_dir), "push"])

    out = capsys.readouterr().out
    assert code == EXIT_OK
    assert "Uploaded: Local.Double" in out
    assert "1 uploaded, 2 skipped, 0 failed" in out
    assert "functions/Local.Double.dax" in github.files


def test_push_dry_run(github, functions_dir, capsys):
    main(["--functions-dir", str(functions_dir), "push", "--dry-run"])

    assert "Would upload: Local.Double" in capsys.readouterr().out
    assert github.puts == []


def test_push_failure_exit_code(github, functions_dir, capsys):
    assert main(["--functions-dir", str(functions_dir), "push", "Greeting"]) == EXIT_OUT_OF_SYNC

    assert "FAILED: Greeting" in capsys.readouterr().err


def test_pull_into_tmdl_model(github, tmp_path, capsys):
    model = tmp_path / "Sales.SemanticModel"
    (model / "definition").mkdir(parents=True)

    code = main(["--model", str(model), "pull"])

    assert code == EXIT_OK
    assert "Downloaded: AddTax" in capsys.readouterr().out
    tmdl = (model / "definition" / "functions.tmdl").read_text(encoding="utf-8")
    assert "function AddTax =\n\t\t(amount : NUMERIC) =>\n\t\t\tamount * 1.2\n" in tmdl
    assert "function Greeting =" in tmdl


def test_path_override(github, functions_dir, capsys):
    main(["--path", "functions/Text", "--functions-dir", str(functions_dir), "status"])

    out = capsys.readouterr().out
    assert "Greeting" in out
    assert "functions/Math/AddTax.dax" not in out


class TestErrors:
    """Failures exit with status 2 and a message on stderr."""

    def test_missing_repository(self, monkeypatch, capsys):
        monkeypatch.setenv("GITHUB_TOKEN", "ghp_cli_test_token")

        assert main(["scan"]) == EXIT_ERROR
        assert "No repository configured" in capsys.readouterr().err

    def test_missing_token(self, capsys):
        assert main(["--repo", REPO, "scan"]) == EXIT_ERROR
        assert "No GitHub token found" in capsys.readouterr().err

    def test_missing_local_model(self, github, capsys):
        assert main(["status"]) == EXIT_ERROR
        assert "No local model selected" in capsys.readouterr().err

    def test_unknown_function(self, github, functions_dir, capsys):
        assert main(["--functions-dir", str(functions_dir), "status", "Nope"]) == EXIT_ERROR
        assert "Unknown function(s): Nope" in capsys.readouterr().err

    def test_github_auth_error(self, github, functions_dir, capsys):
        github.fail_paths["functions"] = 401

        assert main(["--functions-dir", str(functions_dir), "status"]) == EXIT_ERROR
        assert "GitHub rejected the access token" in capsys.readouterr().err

    def test_invalid_config_file(self, tmp_path, capsys):
        config = tmp_path / "bad.yaml"
        config.write_text("unknown_key: 1\n", encoding="utf-8")

        assert main(["--config", str(config), "scan"]) == EXIT_ERROR
        assert "failed validation" in capsys.readouterr().err

    def test_local_write_failure(self, github, functions_dir, capsys):
        (functions_dir / "Greeting.dax").mkdir()

        assert main(["--functions-dir", str(functions_dir), "pull"]) == EXIT_ERROR
        assert "Cannot write function file" in capsys.readouterr().err

    def test_secrets_manager_without_aws_credentials(self, monkeypatch, capsys):
        monkeypatch.setenv("GITHUB_TOKEN_SECRET_ID", "dax-udf-sync/github-token")
        sm_client = Mock()
        sm_client.get_secret_value.side_effect = NoCredentialsError()

        with patch("dax_udf_sync.config.settings.boto3.client", return_value=sm_client), patch(
            "dax_udf_sync.config.settings.time.sleep"
        ):
            assert main(["--repo", REPO, "scan"]) == EXIT_ERROR

        assert "Unable to locate credentials" in capsys.readouterr().err
