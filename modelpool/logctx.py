from __future__ import annotations
import contextvars
from typing import Dict

_request_id = contextvars.ContextVar("request_id", default=None)
_candidate  = contextvars.ContextVar("candidate", default=None)

def set_request_id(v: str|None): _request_id.set(v)
def set_candidate(v: str|None):  _candidate.set(v)

def ctx_snapshot() -> Dict[str,str|None]:
    return {
        "request_id": _request_id.get(),
        "candidate": _candidate.get(),
    }
