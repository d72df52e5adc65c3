import re
from pathlib import Path

from autonomy import __version__
from autonomy._version import AUTONOMY_VERSION
from autonomy.versioning import build_version_output, get_version


def test_get_version_matches_constant():
    assert get_version() == AUTONOMY_VERSION
    assert __version__ == AUTONOMY_VERSION


def test_setup_reads_the_same_constant():
    setup_py = Path(__file__).resolve().parent.parent / "setup.py"
    assert re.search(r"AUTONOMY_VERSION", setup_py.read_text(encoding="utf-8"))


def test_build_version_output_uses_package_version():
    output = build_version_output("ollama", "llama3.1")
    assert f"Version:   {AUTONOMY_VERSION}" in output
    assert "Provider:  ollama" in output
    assert "Model:     llama3.1" in output
