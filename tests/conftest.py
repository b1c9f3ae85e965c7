from pathlib import Path

import pytest

import mirror_copy


class RecordingReporter(mirror_copy.Reporter):
    """Keeps (action, relative_path) pairs instead of printing them."""

    def __init__(self):
        super().__init__()
        self.lines = []

    def created(self, relative_path):
        self.lines.append(("created", relative_path.as_posix()))

    def exists(self, relative_path):
        self.lines.append(("exists", relative_path.as_posix()))

    def copied(self, relative_path):
        self.lines.append(("copied", relative_path.as_posix()))

    def removed(self, relative_path):
        self.lines.append(("removed", relative_path.as_posix()))

    def actions(self, action):
        return [p for a, p in self.lines if a == action]


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Never read the real ~/.mirror_copy/config.json."""
    path = tmp_path / "no-such-config.json"
    monkeypatch.setattr(mirror_copy, "CONFIG_PATH", path)
    return path


@pytest.fixture
def reporter():
    return RecordingReporter()


@pytest.fixture
def source(tmp_path: Path) -> Path:
    """a.txt, a hidden .secret and sub/b.txt."""
    src = tmp_path / "src"
    src.mkdir()
    (src / "a.txt").write_bytes(b"hi")
    (src / ".secret").write_bytes(b"x")
    sub = src / "sub"
    sub.mkdir()
    (sub / "b.txt").write_bytes(b"yo")
    return src


@pytest.fixture
def destination(tmp_path: Path) -> Path:
    dst = tmp_path / "dst"
    dst.mkdir()
    return dst


@pytest.fixture
def sample_tree(tmp_path: Path) -> Path:
    """Nested levels with a few files each, plus hidden file and directory."""
    root = tmp_path / "tree"
    for depth in range(3):
        d = root.joinpath(*(f"level{i}" for i in range(depth + 1)))
        d.mkdir(parents=True, exist_ok=True)
        for j in range(3):
            (d / f"file_{j}.txt").write_text(f"content at depth {depth}, file {j}")
    (root / ".hidden_dir").mkdir()
    (root / ".hidden_dir" / "inner.txt").write_text("inner")
    (root / "level0" / ".dotfile").write_text("dot")
    return root
