#!/usr/bin/env python3
"""
manifest_validate.py — sanity checks for the run manifest.

Checks:
- only known top-level sections (fetch, output)
- fetch.url is an http(s) URL
- fetch.timeout_sec > 0
- fetch.imdsv2 is a boolean
- fetch.token_ttl_sec within the IMDSv2 bounds (1..21600)
- output.path is a string
"""
from __future__ import annotations
import sys, yaml

from .common import read_json_stdin, write_json

SECTIONS = {"fetch", "output"}
TOKEN_TTL_MAX = 21600

def load_manifest(path: str) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        m = yaml.safe_load(f)
    return m or {}

def _check_fetch(f, errors):
    if not isinstance(f, dict):
        errors.append("fetch:not_object"); return
    url = f.get("url")
    if url is not None:
        if not isinstance(url, str):
            errors.append("fetch.url:not_string")
        elif not url.startswith(("http://", "https://")):
            errors.append("fetch.url:scheme")
    to = f.get("timeout_sec", 5)
    if isinstance(to, bool) or not isinstance(to, (int, float)) or to <= 0:
        errors.append("fetch.timeout_sec:value")
    if not isinstance(f.get("imdsv2", False), bool):
        errors.append("fetch.imdsv2:not_bool")
    ttl = f.get("token_ttl_sec", 60)
    if isinstance(ttl, bool) or not isinstance(ttl, int) or not 1 <= ttl <= TOKEN_TTL_MAX:
        errors.append("fetch.token_ttl_sec:value")

def validate(m) -> list[str]:
    if not isinstance(m, dict):
        return ["manifest:not_object"]
    errors = []
    for k in m:
        if k not in SECTIONS:
            errors.append(f"unknown:{k}")
    if "fetch" in m:
        _check_fetch(m["fetch"], errors)
    out = m.get("output", {})
    if not isinstance(out, dict):
        errors.append("output:not_object")
    elif "path" in out and not isinstance(out["path"], str):
        errors.append("output.path:not_string")
    return errors

def main():
    data = read_json_stdin()
    path = data.get("manifest_path")
    if not path:
        print("error: manifest_path required", file=sys.stderr); sys.exit(2)

    errors = validate(load_manifest(path))
    ok = len(errors) == 0
    write_json({"ok": ok, "errors": errors})
    sys.exit(0 if ok else 1)

if __name__ == "__main__":
    main()
