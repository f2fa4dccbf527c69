import io
import json
import os
import subprocess
import tarfile

import pytest
import requests

from pushbuilder.core import Builder
from pushbuilder.models import BuilderSettings, Failure, PipelineState, Success

SHA = "0123456789abcdef0123456789abcdef01234567"


def _tar_bytes(entries):
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w") as tar:
        for name, content in entries.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return buffer.getvalue()


def _write_slug(path, entries):
    with tarfile.open(path, "w:gz") as tar:
        for name, content in entries.items():
            data = content.encode("utf-8")
            info = tarfile.TarInfo(f"./{name}")
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))


class FakeProcess:
    def __init__(self, lines, returncode):
        self.stdout = io.StringIO("".join(f"{line}\n" for line in lines))
        self.returncode = returncode

    def wait(self):
        return self.returncode


class FakeArchiveProcess:
    def __init__(self, data):
        self.stdout = io.BytesIO(data)
        self.stderr = io.BytesIO(b"")

    def kill(self):
        return None

    def wait(self):
        return 0


class FakeSubprocess:
    PIPE = subprocess.PIPE
    STDOUT = subprocess.STDOUT

    def __init__(self, tree, attach_code=0, build_code=0, push_code=0, slug_entries=None):
        self.tree = tree
        self.attach_code = attach_code
        self.build_code = build_code
        self.push_code = push_code
        self.slug_entries = slug_entries or {"Procfile": "web: bin/start\n"}
        self.commands = []

    def run(self, cmd, text=True, capture_output=False, cwd=None):
        self.commands.append(cmd)
        if cmd[:2] == ["docker", "create"]:
            return subprocess.CompletedProcess(cmd, 0, stdout="abc123\n", stderr="")
        if cmd[:2] == ["docker", "cp"]:
            _write_slug(cmd[3], self.slug_entries)
        if cmd[:2] == ["docker", "push"]:
            return subprocess.CompletedProcess(cmd, self.push_code, stdout="", stderr="denied")
        return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    def Popen(self, cmd, **_kwargs):
        self.commands.append(cmd)
        if cmd[:2] == ["git", "archive"]:
            return FakeArchiveProcess(_tar_bytes(self.tree))
        if cmd[:2] == ["docker", "start"]:
            return FakeProcess(["-----> Python app detected"], self.attach_code)
        return FakeProcess(["Step 1/4 : FROM deis/slugrunner"], self.build_code)

    def ran(self, *prefix):
        return [cmd for cmd in self.commands if cmd[: len(prefix)] == list(prefix)]


class FakeResponse:
    def __init__(self, status_code, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeRequests:
    RequestException = requests.RequestException

    def __init__(self, config_response=None, build_response=None):
        self.config_response = config_response or FakeResponse(200, {"values": {"DEBUG": "1"}})
        self.build_response = build_response or FakeResponse(
            201,
            {"release": {"version": 3}, "domains": ["myapp.example.com"]},
        )
        self.posts = []

    def post(self, url, **kwargs):
        self.posts.append((url, kwargs))
        if url.endswith("/v1/hooks/config"):
            return self.config_response
        return self.build_response

    def posted(self, suffix):
        return [kwargs["json"] for url, kwargs in self.posts if url.endswith(suffix)]


@pytest.fixture
def repo_root(tmp_path):
    (tmp_path / "myapp.git").mkdir()
    return tmp_path


def build_builder(repo_root, fake_subprocess, fake_requests, **settings_kwargs):
    settings = BuilderSettings(
        registry_host="registry.local",
        controller_host="controller.local",
        builder_key="secret",
        builder_root=str(repo_root),
        **settings_kwargs,
    )
    return Builder(
        user="alice",
        repository="myapp.git",
        sha=SHA,
        settings=settings,
        requests_module=fake_requests,
        subprocess_module=fake_subprocess,
    )


def test_dockerfile_push_builds_directly_and_publishes_release(repo_root):
    fake_subprocess = FakeSubprocess({"Dockerfile": "FROM busybox\n", "Procfile": "web: run-server\n"})
    fake_requests = FakeRequests()
    builder = build_builder(repo_root, fake_subprocess, fake_requests)

    outcome = builder.execute()

    assert isinstance(outcome, Success)
    assert outcome.release.version == 3
    assert outcome.release.domain == "myapp.example.com"
    assert fake_subprocess.ran("docker", "create") == []
    assert fake_requests.posted("/v1/hooks/config") == []
    assert fake_subprocess.ran("docker", "build") == [
        ["docker", "build", "-t", "myapp:git-01234567", builder.context.staging_dir]
    ]
    assert fake_subprocess.ran("docker", "push") == [
        ["docker", "push", "registry.local:5000/myapp:git-01234567"]
    ]
    assert fake_requests.posted("/v1/hooks/build") == [
        {
            "receive_user": "alice",
            "receive_repo": "myapp",
            "image": "myapp",
            "sha": "01234567",
            "procfile": {"web": "run-server"},
            "dockerfile": True,
        }
    ]
    assert fake_subprocess.ran("git", "gc")
    assert not os.path.exists(builder.context.staging_dir)
    assert builder.history == [
        PipelineState.RECEIVED,
        PipelineState.STAGED,
        PipelineState.MODE_DETECTED,
        PipelineState.BUILT,
        PipelineState.PUSHED,
        PipelineState.PROCESS_TYPES_RESOLVED,
        PipelineState.PUBLISHED,
        PipelineState.CLEANED,
    ]


def test_dockerfile_push_without_procfile_sends_empty_process_types(repo_root):
    fake_subprocess = FakeSubprocess({"Dockerfile": "FROM busybox\n"})
    fake_requests = FakeRequests()

    assert build_builder(repo_root, fake_subprocess, fake_requests).run() == 0
    assert fake_requests.posted("/v1/hooks/build")[0]["procfile"] == {}


def test_buildpack_push_uses_artifact_and_removes_container(repo_root):
    fake_subprocess = FakeSubprocess({"app.py": "print('hi')\n"})
    fake_requests = FakeRequests()
    builder = build_builder(repo_root, fake_subprocess, fake_requests, keep_build_dir=True)

    outcome = builder.execute()

    assert isinstance(outcome, Success)
    created = fake_subprocess.ran("docker", "create")
    assert len(created) == 1
    assert "DEBUG=1" in created[0]
    assert f"{repo_root}/myapp.git/cache:/tmp/cache:rw" in created[0]
    assert os.path.exists(builder.context.artifact_path)
    with open(builder.context.dockerfile_path, encoding="utf-8") as file_obj:
        assert f"ENV GIT_SHA {SHA}" in file_obj.read()
    payload = fake_requests.posted("/v1/hooks/build")[0]
    assert payload["procfile"] == {"web": "bin/start"}
    assert payload["dockerfile"] is False
    assert fake_subprocess.ran("docker", "rm") == [["docker", "rm", "-f", "abc123"]]


def test_buildpack_failure_exits_nonzero_and_removes_container(repo_root):
    fake_subprocess = FakeSubprocess({"app.py": "print('hi')\n"}, attach_code=1)
    fake_requests = FakeRequests()
    builder = build_builder(repo_root, fake_subprocess, fake_requests)

    outcome = builder.execute()

    assert isinstance(outcome, Failure)
    assert outcome.stage == "build"
    assert outcome.message.startswith("Buildpack compilation exited with code 1.")
    assert outcome.exit_code == 1
    assert fake_subprocess.ran("docker", "build") == []
    assert fake_subprocess.ran("docker", "rm") == [["docker", "rm", "-f", "abc123"]]
    assert fake_requests.posted("/v1/hooks/build") == []
    assert builder.state is PipelineState.CLEANED


def test_dockerfile_build_failure_exits_nonzero_without_push(repo_root, capsys):
    fake_subprocess = FakeSubprocess({"Dockerfile": "FROM busybox\n"}, build_code=1)
    fake_requests = FakeRequests()
    builder = build_builder(repo_root, fake_subprocess, fake_requests)

    outcome = builder.execute()

    assert isinstance(outcome, Failure)
    assert outcome.stage == "build"
    assert outcome.message.startswith("Docker build of myapp:git-01234567 exited with code 1.")
    assert outcome.exit_code == 1
    assert "Unexpected error" not in capsys.readouterr().out
    assert fake_subprocess.ran("docker", "push") == []
    assert fake_requests.posts == []
    assert builder.state is PipelineState.CLEANED


def test_option_like_commit_is_rejected_before_git_runs(repo_root):
    fake_subprocess = FakeSubprocess({"Dockerfile": "FROM busybox\n"})
    settings = BuilderSettings(
        registry_host="registry.local",
        controller_host="controller.local",
        builder_key="secret",
        builder_root=str(repo_root),
    )
    builder = Builder(
        user="alice",
        repository="myapp.git",
        sha="--output=/tmp/owned",
        settings=settings,
        requests_module=FakeRequests(),
        subprocess_module=fake_subprocess,
    )

    outcome = builder.execute()

    assert isinstance(outcome, Failure)
    assert outcome.stage == "stage"
    assert fake_subprocess.ran("git", "archive") == []
    assert not (repo_root / "myapp.git" / "build").exists()


def test_config_fetch_failure_aborts_before_container_launch(repo_root):
    fake_subprocess = FakeSubprocess({"app.py": "print('hi')\n"})
    fake_requests = FakeRequests(config_response=FakeResponse(500, text="boom"))
    builder = build_builder(repo_root, fake_subprocess, fake_requests)

    outcome = builder.execute()

    assert isinstance(outcome, Failure)
    assert outcome.stage == "config"
    assert fake_subprocess.ran("docker") == []


def test_release_failure_after_push_exits_nonzero(repo_root):
    fake_subprocess = FakeSubprocess({"Dockerfile": "FROM busybox\n"})
    fake_requests = FakeRequests(build_response=FakeResponse(503, text="controller unavailable"))
    builder = build_builder(repo_root, fake_subprocess, fake_requests)

    assert builder.run() == 1
    assert fake_subprocess.ran("docker", "push") == [
        ["docker", "push", "registry.local:5000/myapp:git-01234567"]
    ]
    assert builder.history[-2] is PipelineState.PROCESS_TYPES_RESOLVED
    assert builder.state is PipelineState.CLEANED


def test_registry_failure_skips_release(repo_root):
    fake_subprocess = FakeSubprocess({"Dockerfile": "FROM busybox\n"}, push_code=1)
    fake_requests = FakeRequests()
    builder = build_builder(repo_root, fake_subprocess, fake_requests)

    outcome = builder.execute()

    assert isinstance(outcome, Failure)
    assert outcome.stage == "push"
    assert fake_requests.posts == []


def test_missing_repository_fails_staging_without_side_effects(tmp_path):
    fake_subprocess = FakeSubprocess({"Dockerfile": "FROM busybox\n"})
    builder = build_builder(tmp_path, fake_subprocess, FakeRequests())

    outcome = builder.execute()

    assert isinstance(outcome, Failure)
    assert outcome.stage == "stage"
    assert fake_subprocess.commands == []
    assert not (tmp_path / "myapp.git").exists()


def test_serialized_builds_release_lock_on_failure(repo_root):
    fake_subprocess = FakeSubprocess({"app.py": "print('hi')\n"}, attach_code=2)
    builder = build_builder(repo_root, fake_subprocess, FakeRequests(), serialize_builds=True)

    assert builder.run() == 1
    assert builder.build_lock is not None
    assert not builder.build_lock.held
    assert (repo_root / "myapp.git" / "build.lock").exists()
