"""Integration tests for CLI commands.

These run the typer app in-process with every HTTP session routed to the
fake server, and credentials kept in a temporary config dir.
"""

import pytest
from typer.testing import CliRunner

from fstn.cli import app
from fstn.credentials import CredentialStore
from fstn.hashing import digest

from conftest import ALICE_TOKEN, SERVER


@pytest.fixture
def runner():
    """Create a CliRunner for in-process testing."""
    return CliRunner()


@pytest.fixture
def logged_in(runner, config_dir, routed_http):
    result = runner.invoke(app, ["--server", SERVER, "login", "--token", ALICE_TOKEN])
    assert result.exit_code == 0, result.output
    return config_dir


def invoke(runner, *args, **kwargs):
    return runner.invoke(app, ["--server", SERVER, *args], **kwargs)


class TestLogin:

    def test_login_with_prompt(self, runner, config_dir, routed_http):
        result = invoke(runner, "login", input=f"{ALICE_TOKEN}\n")
        assert result.exit_code == 0, result.output
        assert "login/cas" in result.output

        entry = CredentialStore(config_dir).load_entry(SERVER, "default")
        assert entry.token == ALICE_TOKEN
        assert entry.user == "alice"

    def test_login_bad_token(self, runner, config_dir, routed_http):
        result = invoke(runner, "login", "--token", "nope")
        assert result.exit_code == 1
        assert CredentialStore(config_dir).load_entry(SERVER, "default") is None

    def test_login_set_default(self, runner, config_dir, routed_http):
        result = invoke(runner, "login", "--token", ALICE_TOKEN, "--default")
        assert result.exit_code == 0, result.output
        assert CredentialStore(config_dir).default_server() == SERVER

        # later invocations pick the server up from the file
        result = runner.invoke(app, ["whoami"])
        assert result.exit_code == 0, result.output
        assert '"login": "alice"' in result.output

    def test_profile_option(self, runner, config_dir, routed_http):
        result = invoke(runner, "--user", "work", "login", "--token", ALICE_TOKEN)
        assert result.exit_code == 0, result.output
        store = CredentialStore(config_dir)
        assert store.load_entry(SERVER, "work").token == ALICE_TOKEN
        assert store.load_entry(SERVER, "default") is None


class TestValueCommands:

    def test_set_then_get(self, runner, logged_in):
        result = invoke(runner, "set", "~:notes", '{"a": 1}')
        assert result.exit_code == 0, result.output

        result = invoke(runner, "get", "~:notes")
        assert result.exit_code == 0
        assert result.stdout_bytes == b'{"a": 1}'

    def test_set_from_stdin(self, runner, logged_in):
        result = invoke(runner, "set", "~:notes", input="from stdin\n")
        assert result.exit_code == 0, result.output

        result = invoke(runner, "get", "~:notes")
        assert result.stdout_bytes == b"from stdin\n"

    def test_get_missing(self, runner, logged_in):
        result = invoke(runner, "get", "~:nothing")
        assert result.exit_code == 1
        assert "not found" in result.output.lower()

    def test_invalid_key(self, runner, logged_in):
        result = invoke(runner, "get", "a::b")
        assert result.exit_code == 1
        assert "Invalid key" in result.output


class TestBlobCommands:

    def test_put_get_fetch(self, runner, logged_in, tmp_path):
        src = tmp_path / "image.img"
        src.write_bytes(bytes(range(256)))
        out = tmp_path / "copy.img"

        result = invoke(runner, "put", "~:thumbnail.img", str(src))
        assert result.exit_code == 0, result.output
        assert digest(src.read_bytes()) in result.output

        result = invoke(runner, "get", "~:thumbnail.img")
        assert result.stdout_bytes == digest(src.read_bytes()).encode()

        result = invoke(runner, "fetch", "~:thumbnail.img", str(out))
        assert result.exit_code == 0, result.output
        assert out.read_bytes() == src.read_bytes()

    def test_put_missing_file(self, runner, logged_in, tmp_path):
        result = invoke(runner, "put", "~:x", str(tmp_path / "missing"))
        assert result.exit_code == 1
        assert "Cannot read" in result.output


class TestNotLoggedIn:

    @pytest.mark.parametrize("args", [
        ["get", "~:k"],
        ["set", "~:k", "v"],
        ["fetch", "~:k", "out"],
        ["whoami"],
    ])
    def test_commands_require_login(self, runner, config_dir, routed_http, fake_server, args):
        result = invoke(runner, *args)
        assert result.exit_code == 1
        assert "fstn login" in result.output
        assert fake_server.requests == []

    def test_put_requires_login(self, runner, config_dir, routed_http, fake_server, tmp_path):
        src = tmp_path / "f"
        src.write_bytes(b"x")
        result = invoke(runner, "put", "~:k", str(src))
        assert result.exit_code == 1
        assert fake_server.requests == []


class TestMiscCommands:

    def test_ping(self, runner, config_dir, routed_http):
        result = invoke(runner, "ping")
        assert result.exit_code == 0, result.output
        assert "ping:" in result.output

    def test_ls(self, runner, logged_in):
        invoke(runner, "set", "~:a", "1")
        result = invoke(runner, "ls", "~")
        assert result.exit_code == 0, result.output
        assert '"a"' in result.output

    def test_server_down(self, runner, logged_in, fake_server):
        fake_server.down = True
        result = invoke(runner, "get", "~:k")
        assert result.exit_code == 1
        assert "Cannot connect" in result.output

    def test_version(self, runner):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "fstn" in result.output

    def test_ping_scheduler(self, runner, config_dir, routed_http, fake_server):
        result = invoke(runner, "ping-scheduler")
        assert result.exit_code == 0, result.output
        assert fake_server.requests[-1].url.endswith("/faasten/ping/scheduler")

    def test_http_session_closed_after_command(self, runner, logged_in, routed_http, monkeypatch):
        closed = []
        monkeypatch.setattr(routed_http, "close", lambda: closed.append(True))
        result = invoke(runner, "set", "~:k", "v")
        assert result.exit_code == 0, result.output
        assert closed == [True]

    @pytest.mark.parametrize("server", ["faasten.example", "ftp://faasten.example"])
    def test_bad_server_url(self, runner, config_dir, routed_http, fake_server, server):
        result = runner.invoke(app, ["--server", server, "login", "--token", ALICE_TOKEN])
        assert result.exit_code == 1
        assert "✗" in result.output
        assert "http(s)" in result.output
        assert fake_server.requests == []


class TestNamespaceCommands:

    def test_mkdir_mkfile_unlink(self, runner, logged_in, fake_server):
        result = invoke(runner, "mkdir", "~", "photos")
        assert result.exit_code == 0, result.output
        assert fake_server.ops[-1][1]["label"] == "T,T"

        result = invoke(runner, "mkfile", "--label", "alice,alice", "~:photos", "cat.png")
        assert result.exit_code == 0, result.output
        assert fake_server.ops[-1][1]["label"] == "alice,alice"

        result = invoke(runner, "ls", "~:photos")
        assert '"cat.png"' in result.output

        result = invoke(runner, "unlink", "~", "photos")
        assert result.exit_code == 0, result.output
        result = invoke(runner, "ls", "~")
        assert '"photos"' not in result.output

    def test_unlink_missing(self, runner, logged_in):
        result = invoke(runner, "unlink", "~", "ghost")
        assert result.exit_code == 1
        assert "no such entry" in result.output

    def test_mkdir_requires_login(self, runner, config_dir, routed_http, fake_server):
        result = invoke(runner, "mkdir", "~", "photos")
        assert result.exit_code == 1
        assert "fstn login" in result.output
        assert fake_server.requests == []
