from typer.testing import CliRunner
import yaml

from runtime.cli import app

runner = CliRunner()


def test_cli_run_prints_observation(tmp_path):
    code_file = tmp_path / "snippet.py"
    code_file.write_text("print('hi')\n1 + 2\n")

    result = runner.invoke(app, ["run", str(code_file)])

    assert result.exit_code == 0
    assert "Execution logs:\nhi" in result.output
    assert "Last output from code snippet:\n3" in result.output


def test_cli_run_reports_denied_import(tmp_path):
    code_file = tmp_path / "snippet.py"
    code_file.write_text("print('before')\nimport os\n")

    result = runner.invoke(app, ["run", str(code_file)])

    assert result.exit_code == 1
    assert "before" in result.output
    assert "[import_blocked]" in result.output
    assert "'os'" in result.output


def test_cli_run_authorize_flag(tmp_path):
    code_file = tmp_path / "snippet.py"
    code_file.write_text("import string\nstring.digits[:3]\n")

    denied = runner.invoke(app, ["run", str(code_file)])
    allowed = runner.invoke(app, ["run", str(code_file), "--authorize", "string"])

    assert denied.exit_code == 1
    assert allowed.exit_code == 0
    assert "012" in allowed.output


def test_cli_run_uses_config_timeout(tmp_path):
    config_file = tmp_path / "runtime.yaml"
    with open(config_file, "w") as f:
        yaml.dump({"timeout_seconds": 0.5}, f)
    code_file = tmp_path / "loop.py"
    code_file.write_text("while True:\n    pass\n")

    result = runner.invoke(app, ["run", str(code_file), "--config", str(config_file)])

    assert result.exit_code == 1
    assert "[timeout]" in result.output


def test_cli_run_rejects_non_positive_timeout(tmp_path):
    code_file = tmp_path / "snippet.py"
    code_file.write_text("1 + 2\n")

    result = runner.invoke(app, ["run", str(code_file), "--timeout", "0"])

    assert result.exit_code == 1
    assert "Invalid config" in result.output


def test_cli_run_missing_file(tmp_path):
    result = runner.invoke(app, ["run", str(tmp_path / "missing.py")])
    assert result.exit_code == 1
    assert "Code file not found" in result.output


def test_cli_validate_tool(tmp_path):
    valid = tmp_path / "valid_tool.py"
    valid.write_text(
        "class EchoTool:\n"
        "    name = 'echo'\n"
        "    def forward(self, text):\n"
        "        return text\n"
    )
    invalid = tmp_path / "invalid_tool.py"
    invalid.write_text(
        "class FetchTool:\n"
        "    def forward(self, url):\n"
        "        return requests.get(url)\n"
    )

    ok = runner.invoke(app, ["validate-tool", str(valid)])
    failed = runner.invoke(app, ["validate-tool", str(invalid)])

    assert ok.exit_code == 0
    assert "Tool definition is valid" in ok.output
    assert failed.exit_code == 1
    assert "Name 'requests' is undefined." in failed.output


def test_cli_show_imports():
    result = runner.invoke(app, ["show-imports", "-a", "string"])
    assert result.exit_code == 0
    assert "12 authorized module(s)" in result.output
    assert "  string" in result.output
