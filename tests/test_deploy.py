from conftest import FakeHost
from perf_harness.automation import deploy
from perf_harness.automation.deploy import build_script, copy_and_build, rsync_argv


def test_rsync_argv():
    host = FakeHost("198.51.100.20")
    assert rsync_argv(host, "../impl", "/root") == [
        "rsync",
        "-avz",
        "--progress",
        "--exclude=node_modules",
        "--filter=:- .gitignore",
        "-e",
        "ssh -o StrictHostKeyChecking=no",
        "../impl",
        "root@198.51.100.20:/root",
    ]


def test_build_script():
    assert build_script(["rust-libp2p", "go-libp2p"]) == "cd impl && make rust-libp2p go-libp2p"


def test_copy_and_build(monkeypatch):
    local = []
    monkeypatch.setattr(deploy, "run_command", lambda argv, allowed_exit_codes=(): local.append(argv) or "sent\n")
    host = FakeHost("198.51.100.20", [("make", "built\n")])

    copy_and_build(host, ["https"], "../impl", "/root")

    assert local[0][0] == "rsync"
    assert host.scripts == ["cd impl && make https"]


def test_copy_and_build_nothing_selected(monkeypatch):
    def unexpected(*args, **kwargs):
        raise AssertionError("rsync should not run")

    monkeypatch.setattr(deploy, "run_command", unexpected)
    host = FakeHost("198.51.100.20")
    copy_and_build(host, [], "../impl", "/root")
    assert host.scripts == []
