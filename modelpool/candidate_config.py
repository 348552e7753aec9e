from __future__ import annotations
import os, yaml
from typing import Dict, Any, List, Optional

from .logging_setup import get_logger
from .settings import settings

log = get_logger("candidate_config")

_DEFAULT: Dict[str, Any] = {
    # tried in this order when the pool is empty and discovery gives nothing
    "fallback_candidates": [
        "Qwen/Qwen2.5-7B-Instruct",
        "Qwen/Qwen2.5-3B-Instruct",
        "meta-llama/Llama-3.1-8B-Instruct",
        "Qwen/Qwen2.5-1.5B-Instruct",
        "mistralai/Mistral-Nemo-12B-Instruct",
    ],
    # organisations whose models are free on the router; others may be billed
    "allowed_providers": [
        "Qwen", "meta-llama", "mistralai", "google", "microsoft", "bigscience", "tiiuae",
    ],
    "required_keyword": "Instruct",
    "max_candidates": 15,
    "query": {
        "pipeline_tag": "text-generation",
        "sort": "downloads",
        "limit": 30,
        "filter": "conversational",
    },
}

_CACHE: Dict[str, Any] = {"path": None, "cfg": None, "mtime": 0.0}


def _copy(cfg: Dict[str, Any]) -> Dict[str, Any]:
    return {k: (dict(v) if isinstance(v, dict) else list(v) if isinstance(v, list) else v) for k, v in cfg.items()}


def _merged(doc: Dict[str, Any]) -> Dict[str, Any]:
    cfg = _copy(_DEFAULT)
    for k, v in doc.items():
        if v is None:
            continue
        if k == "query" and isinstance(v, dict):
            cfg["query"].update(v)
        else:
            cfg[k] = v
    return _checked(cfg)


def _checked(cfg: Dict[str, Any]) -> Dict[str, Any]:
    for key in ("fallback_candidates", "allowed_providers"):
        if not isinstance(cfg[key], list):
            raise ValueError(f"{key} must be a list, got {type(cfg[key]).__name__}")
        cfg[key] = [str(x) for x in cfg[key]]
    if not isinstance(cfg["query"], dict):
        raise ValueError(f"query must be a mapping, got {type(cfg['query']).__name__}")
    try:
        cfg["max_candidates"] = int(cfg["max_candidates"])
    except (TypeError, ValueError):
        raise ValueError(f"max_candidates must be an integer, got {cfg['max_candidates']!r}")
    cfg["required_keyword"] = str(cfg["required_keyword"] or "")
    return cfg


def get_candidate_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Catalog settings from YAML, re-read whenever the file's mtime moves.

    A broken file is logged and skipped: the last good config for the same
    path stays in effect, otherwise the built-in defaults.
    """
    path = path or settings.candidate_config_path
    try:
        st = os.stat(path)
        if _CACHE["path"] != path or st.st_mtime > _CACHE["mtime"] or _CACHE["cfg"] is None:
            try:
                with open(path, "r", encoding="utf-8") as f:
                    doc = yaml.safe_load(f) or {}
                if not isinstance(doc, dict):
                    raise ValueError(f"expected a mapping at top level, got {type(doc).__name__}")
                cfg = _merged(doc)
            except (yaml.YAMLError, ValueError, OSError) as exc:
                log.error("candidate_config.invalid", {"path": path, "err": str(exc)})
                cfg = _CACHE["cfg"] if _CACHE["path"] == path and _CACHE["cfg"] is not None else _merged({})
            _CACHE.update(path=path, cfg=cfg, mtime=st.st_mtime)
    except FileNotFoundError:
        _CACHE.update(path=path, cfg=_merged({}), mtime=0.0)
    return _copy(_CACHE["cfg"])


def fallback_candidates(path: Optional[str] = None) -> List[str]:
    return list(get_candidate_config(path)["fallback_candidates"])
