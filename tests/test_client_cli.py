"""Tests for the padu-import command line."""

from __future__ import annotations

import pytest
from click.testing import CliRunner

from padu_api.client import cli as cli_module
from padu_api.client.cli import cli
from padu_api.client.submitters import HttpIngestionClient
from padu_api.imports.templates import build_template_csv


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def _write(tmp_path, content: bytes, name: str = "reviews.csv") -> str:
    path = tmp_path / name
    path.write_bytes(content)
    return str(path)


VALID = (
    b"date,platform,rating,text\n"
    b'2024-01-15,google,5,"Great stay, highly recommend!"\n'
    b"2024-01-16,booking,4,Nice\n"
)
WITH_ERROR = VALID + b"2024-01-17,yelp,3,Meh\n"


class TestTemplateCommand:
    def test_writes_template(self, runner, tmp_path):
        output = tmp_path / "template.csv"

        result = runner.invoke(cli, ["template", "-o", str(output)])

        assert result.exit_code == 0
        assert output.read_bytes() == build_template_csv()


class TestCheckCommand:
    """padu-import check."""

    def test_clean_file(self, runner, tmp_path):
        result = runner.invoke(cli, ["check", _write(tmp_path, VALID)])

        assert result.exit_code == 0
        assert "2 accepted" in result.output
        assert "Ready to import" in result.output

    def test_errors_block_in_strict_mode(self, runner, tmp_path):
        result = runner.invoke(cli, ["check", _write(tmp_path, WITH_ERROR)])

        assert result.exit_code == 1
        assert "Row 3: Invalid platform 'yelp'" in result.output

    def test_blocking_row_listed_after_many_warnings(self, runner, tmp_path):
        lines = [b"date,platform,rating,text"]
        lines += [b"2024-01-%02d,google,5,%s" % (n, b"x" * 5001) for n in range(1, 13)]
        lines.append(b"2024-01-20,google,9,bad")
        content = b"\n".join(lines) + b"\n"

        result = runner.invoke(cli, ["check", _write(tmp_path, content)])

        assert result.exit_code == 1
        assert "12 with warnings" in result.output
        assert "Row 13: Invalid rating '9'" in result.output

    def test_lenient_ratio(self, runner, tmp_path):
        result = runner.invoke(
            cli, ["check", _write(tmp_path, WITH_ERROR), "--max-error-ratio", "0.5"]
        )

        assert result.exit_code == 0

    def test_map_override(self, runner, tmp_path):
        content = b"platform,stars,when\ngoogle,5,2024-01-15\n"

        missing = runner.invoke(cli, ["check", _write(tmp_path, content)])
        mapped = runner.invoke(
            cli, ["check", _write(tmp_path, content), "--map", "created_at=when"]
        )

        assert missing.exit_code == 1
        assert "created_at" in missing.output
        assert mapped.exit_code == 0

    def test_bad_override_syntax(self, runner, tmp_path):
        result = runner.invoke(cli, ["check", _write(tmp_path, VALID), "--map", "rating"])

        assert result.exit_code == 2

    def test_not_a_csv(self, runner, tmp_path):
        result = runner.invoke(cli, ["check", _write(tmp_path, VALID, "reviews.txt")])

        assert result.exit_code == 1
        assert "Error" in result.output


class TestUploadCommand:
    """padu-import upload against the in-process API."""

    @pytest.fixture
    def api_client(self, client, monkeypatch):
        def build(base_url, token=None):
            return HttpIngestionClient(client=client, token=token)

        monkeypatch.setattr(cli_module, "HttpIngestionClient", build)

    def test_upload(self, runner, tmp_path, api_client, auth_headers, integration, fake_s3, inline_queue):
        token = auth_headers["Authorization"].split(" ", 1)[1]

        result = runner.invoke(
            cli,
            [
                "upload",
                _write(tmp_path, VALID),
                "--integration-id",
                str(integration.id),
                "--token",
                token,
                "--chunk-size",
                "1",
            ],
        )

        assert result.exit_code == 0, result.output
        assert "Submitted 2/2 rows (100%)" in result.output
        assert "Inserted 2, updated 0, skipped 0, errors 0" in result.output

    def test_upload_blocked_by_errors(self, runner, tmp_path, api_client, integration, fake_s3, fake_queue):
        result = runner.invoke(
            cli,
            [
                "upload",
                _write(tmp_path, WITH_ERROR),
                "--integration-id",
                str(integration.id),
                "--token",
                "unused",
            ],
        )

        assert result.exit_code == 1
        assert "Import blocked by validation errors" in result.output
        assert fake_queue.calls == []

    def test_upload_rejected_token(self, runner, tmp_path, api_client, integration, fake_s3, fake_queue):
        result = runner.invoke(
            cli,
            [
                "upload",
                _write(tmp_path, VALID),
                "--integration-id",
                str(integration.id),
                "--token",
                "not-a-token",
            ],
        )

        assert result.exit_code == 1
        assert "Invalid token" in result.output
        assert "skipped 2" in result.output
