from __future__ import annotations

import os

import pytest

from modelpool.candidate_config import fallback_candidates, get_candidate_config


def test_missing_file_gives_defaults(tmp_path):
    cfg = get_candidate_config(str(tmp_path / "absent.yaml"))
    assert cfg["required_keyword"] == "Instruct"
    assert cfg["max_candidates"] == 15
    assert cfg["query"]["limit"] == 30
    assert "Qwen" in cfg["allowed_providers"]


def test_yaml_overrides_merge_with_defaults(tmp_path):
    path = tmp_path / "candidates.yaml"
    path.write_text(
        "fallback_candidates: [org/One-Instruct]\n"
        "max_candidates: 4\n"
        "query:\n"
        "  limit: 50\n",
        encoding="utf-8",
    )

    cfg = get_candidate_config(str(path))

    assert fallback_candidates(str(path)) == ["org/One-Instruct"]
    assert cfg["max_candidates"] == 4
    assert cfg["query"] == {"pipeline_tag": "text-generation", "sort": "downloads", "limit": 50, "filter": "conversational"}


def test_file_is_reloaded_when_mtime_moves(tmp_path):
    path = tmp_path / "candidates.yaml"
    path.write_text("max_candidates: 3\n", encoding="utf-8")
    assert get_candidate_config(str(path))["max_candidates"] == 3

    path.write_text("max_candidates: 9\n", encoding="utf-8")
    st = os.stat(path)
    os.utime(path, (st.st_atime, st.st_mtime + 10))

    assert get_candidate_config(str(path))["max_candidates"] == 9


@pytest.mark.parametrize("body", [
    "query: [unclosed\n",
    "- just\n- a list\n",
    "max_candidates: lots\n",
    "fallback_candidates: not-a-list\n",
])
def test_broken_file_falls_back_to_defaults(tmp_path, caplog, body):
    path = tmp_path / "candidates.yaml"
    path.write_text(body, encoding="utf-8")

    with caplog.at_level("ERROR"):
        cfg = get_candidate_config(str(path))

    assert cfg["max_candidates"] == 15
    assert fallback_candidates(str(path))[0] == "Qwen/Qwen2.5-7B-Instruct"
    assert any(r.msg == "candidate_config.invalid" for r in caplog.records)


def test_broken_edit_keeps_last_good_config(tmp_path):
    path = tmp_path / "candidates.yaml"
    path.write_text("max_candidates: 4\n", encoding="utf-8")
    assert get_candidate_config(str(path))["max_candidates"] == 4

    path.write_text("max_candidates: [\n", encoding="utf-8")
    st = os.stat(path)
    os.utime(path, (st.st_atime, st.st_mtime + 10))

    assert get_candidate_config(str(path))["max_candidates"] == 4


def test_callers_cannot_mutate_the_cached_config(tmp_path):
    path = str(tmp_path / "absent.yaml")
    cfg = get_candidate_config(path)
    cfg["max_candidates"] = 1
    cfg["query"]["limit"] = 1
    cfg["fallback_candidates"].clear()

    again = get_candidate_config(path)
    assert again["max_candidates"] == 15
    assert again["query"]["limit"] == 30
    assert len(again["fallback_candidates"]) == 5
