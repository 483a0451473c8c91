"""Tests for the instance loaders.

Each test writes a temporary instance file and asserts either successful
parsing or the correct exception.
"""

from __future__ import annotations

import json
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path

import pytest

from smsched.exceptions import InvalidInstance
from smsched.parser import instance_from_mapping, load_instance, parse_instance_text

DATA_DIR = Path(__file__).resolve().parents[1] / "data"


@contextmanager
def temp_instance(content: str, suffix: str = ".txt"):
    fd, path = tempfile.mkstemp(suffix=suffix, text=True)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        yield path
    finally:
        try:
            os.remove(path)
        except FileNotFoundError:  # pragma: no cover
            pass


def test_parse_text_with_comments():
    content = "# id r d u\nA 2 5 10\n\nB 5 6 21  # trailing comment\n"
    with temp_instance(content) as path:
        inst = load_instance(path)
    assert [job.id for job in inst] == ["A", "B"]
    assert inst.job("B").due == 21
    assert isinstance(inst.job("A").release, int)


def test_parse_text_float_values():
    inst = parse_instance_text("X 0.5 1.25 3\n")
    assert inst.job("X").release == 0.5
    assert inst.job("X").duration == 1.25
    assert not inst.is_integral


@pytest.mark.parametrize(
    "content",
    [
        "",  # no jobs
        "# only a comment\n",
        "A 0 5\n",  # too few tokens
        "A 0 5 10 3\n",  # too many tokens
        "A zero 5 10\n",  # not a number
        "A 0 5 4\n",  # r + d > u
        "A 0 1 4\nA 0 1 4\n",  # duplicate id
    ],
)
def test_parse_text_invalid(content):
    with temp_instance(content) as path:
        with pytest.raises(InvalidInstance):
            load_instance(path)


def test_load_yaml_list_and_mapping_forms():
    content = (
        "jobs:\n"
        "  P: [0, 5, 5]\n"
        "  Q: {release: 0, duration: 5, due: 5}\n"
    )
    with temp_instance(content, suffix=".yaml") as path:
        inst = load_instance(path)
    assert [job.id for job in inst] == ["P", "Q"]
    assert inst.job("Q").duration == 5


def test_load_json_bare_mapping():
    content = json.dumps({"A": [0, 2, 4], "B": [1, 1, 3]})
    with temp_instance(content, suffix=".json") as path:
        inst = load_instance(path)
    assert len(inst) == 2
    assert inst.job("B").release == 1


@pytest.mark.parametrize(
    "data",
    [
        [1, 2, 3],
        {"jobs": [1, 2]},
        {"jobs": {"A": [0, 1]}},
        {"jobs": {"A": {"release": 0, "duration": 1}}},
        {"jobs": {"A": [0, True, 3]}},
    ],
)
def test_mapping_invalid(data):
    with pytest.raises(InvalidInstance):
        instance_from_mapping(data)


def test_invalid_yaml_raises_invalid_instance():
    with temp_instance("jobs: [unclosed\n", suffix=".yml") as path:
        with pytest.raises(InvalidInstance):
            load_instance(path)


def test_missing_file():
    with pytest.raises(FileNotFoundError):
        load_instance("does/not/exist.txt")


def test_bundled_data_files():
    seven = load_instance(str(DATA_DIR / "seven_jobs.txt"))
    assert [job.id for job in seven] == ["A", "B", "C", "D", "E", "F", "G"]
    two = load_instance(str(DATA_DIR / "two_identical.yaml"))
    assert [(j.release, j.duration, j.due) for j in two] == [(0, 5, 5), (0, 5, 5)]
