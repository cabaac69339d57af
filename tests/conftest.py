from __future__ import annotations

import json
import sys
import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

if sys.platform == "win32":  # pragma: no cover - stand-in binaries rely on shebangs
    collect_ignore = ["test_process.py", "test_transport.py"]

# Mimics llama-cli: banner, echoed prompt, streamed answer, stats, exit notice.
FAKE_LLAMA_CLI = r'''
import json
import sys
import time
from pathlib import Path

args = sys.argv[1:]
Path(__file__).with_name("last_argv.json").write_text(json.dumps(args))
prompt = args[args.index("-p") + 1]
banner = [
    "Loading model...",
    "",
    "▄▄ ▄▄",
    "██ ██",
    "",
    "build      : b6100-abc1234",
    "model      : model.gguf",
    "modalities : text",
    "",
    "available commands:",
    "  /exit or Ctrl+C     stop or exit",
    "  /regen              regenerate the last response",
    "  /clear              clear the chat history",
    "  /read               add a text file",
    "",
]
sys.stdout.reconfigure(encoding="utf-8")
out = sys.stdout
out.write("\n".join(banner) + "\n")
out.write("> " + prompt + "\n\n")
out.flush()
for piece in ["The sky ", "is blue.\n", "\n", "Second ", "paragraph."]:
    out.write(piece)
    out.flush()
    time.sleep(0.02)
out.write("\n\n[ Prompt: 12.1 t/s | Generation: 8.4 t/s ]\n\nExiting...\n")
out.flush()
'''

# Mimics llama-embedding with JSON output; rank pooling scores by document length.
FAKE_LLAMA_EMBEDDING = r'''
import json
import sys
from pathlib import Path

args = sys.argv[1:]
Path(__file__).with_name("last_argv.json").write_text(json.dumps(args))
prompt = args[args.index("-p") + 1]
pooling = args[args.index("--pooling") + 1]
if pooling == "rank":
    document = prompt.split("\t", 1)[-1]
    values = [len(document) / 100]
else:
    values = [0.1, 0.2, 0.3]
payload = {"object": "list", "data": [{"object": "embedding", "index": 0, "embedding": values}]}
print(json.dumps(payload))
'''

BinaryFactory = Callable[[str, str], Path]


@pytest.fixture
def bin_dir(tmp_path: Path) -> Path:
    path = tmp_path / "bin"
    path.mkdir()
    return path


@pytest.fixture
def make_binary(bin_dir: Path) -> BinaryFactory:
    """Write an executable Python script that stands in for a llama.cpp binary."""

    def _make(name: str, body: str) -> Path:
        path = bin_dir / name
        path.write_text(f"#!{sys.executable}\n{textwrap.dedent(body)}", encoding="utf-8")
        path.chmod(0o755)
        return path

    return _make


@pytest.fixture
def model_file(tmp_path: Path) -> Path:
    path = tmp_path / "model.gguf"
    path.write_bytes(b"GGUF")
    return path


@pytest.fixture
def fake_cli(make_binary: BinaryFactory) -> Path:
    return make_binary("llama-cli", FAKE_LLAMA_CLI)


@pytest.fixture
def fake_embedding(make_binary: BinaryFactory) -> Path:
    return make_binary("llama-embedding", FAKE_LLAMA_EMBEDDING)


@pytest.fixture
def last_argv(bin_dir: Path) -> Callable[[], list[str]]:
    """Return a reader for the argv the most recent stand-in binary received."""

    def _read() -> list[str]:
        return list(json.loads((bin_dir / "last_argv.json").read_text(encoding="utf-8")))

    return _read
