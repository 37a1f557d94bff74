#!/usr/bin/env python3
"""
common.py — Shared helpers for awsid library CLIs.

All CLIs follow the same contract:
- Read a single JSON object from STDIN.
- Write a single JSON object to STDOUT.
- Fail with a non‑zero exit on any error, printing a short message to STDERR.

Binary values are encoded as *unpadded* base64url. PEM and PKCS#7 bodies
travel as plain strings, exactly as they are served.
"""
from __future__ import annotations
import sys, json, base64, hmac

from .errors import AwsIdError

# ---------- Base64url (unpadded) ----------
def b64u(b: bytes) -> str:
    return base64.urlsafe_b64encode(b).rstrip(b"=").decode("ascii")

def to_bytes(v) -> bytes:
    # PEM and PKCS#7 bodies are ASCII; accept either form
    if isinstance(v, str):
        return v.encode("ascii", errors="strict")
    return bytes(v)

# ---------- JSON IO ----------
def read_json_stdin() -> dict:
    try:
        return json.load(sys.stdin)
    except Exception as e:
        print(f"error: invalid JSON on stdin: {e}", file=sys.stderr)
        sys.exit(2)

def write_json(obj: dict) -> None:
    json.dump(obj, sys.stdout, separators=(",",":"))
    sys.stdout.write("\n")

def error_json(e: AwsIdError) -> dict:
    return {"valid": False, "error": e.kind, "reason": str(e)}

# ---------- Validation helpers ----------
def ct_eq(a: bytes, b: bytes) -> bool:
    # constant‑time compare for digests
    return hmac.compare_digest(a, b)
