#!/usr/bin/env python3
"""
imds_fetch.py — Retrieves the signed identity document.

The instance metadata service is plain HTTP on a link-local address and is
not authenticated, which is why the body is only trusted after it verifies
against the pinned certificate. Any failure surfaces as TransportError; there
are no retries here.
"""
from __future__ import annotations
import sys
import pathlib
import requests

from .common import read_json_stdin, write_json
from .errors import AwsIdError, TransportError

SIG_URL = "http://169.254.169.254/latest/dynamic/instance-identity/pkcs7"
TOKEN_PATH = "/latest/api/token"
DEFAULT_TIMEOUT = 5.0


def token_url(url: str) -> str:
    # the token endpoint lives on the same host as the document
    scheme, _, rest = url.partition("://")
    host = rest.split("/", 1)[0]
    return f"{scheme}://{host}{TOKEN_PATH}"


def imdsv2_token(url: str, ttl: int, timeout: float = DEFAULT_TIMEOUT) -> str:
    """Obtains an IMDSv2 session token valid for `ttl` seconds."""
    try:
        r = requests.put(token_url(url),
                         headers={"X-aws-ec2-metadata-token-ttl-seconds": str(ttl)},
                         timeout=timeout)
        r.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise TransportError(f"could not obtain IMDSv2 token: {e}") from e
    return r.text.strip()


def fetch(url: str = SIG_URL, timeout: float = DEFAULT_TIMEOUT, token_ttl: int | None = None) -> bytes:
    """Returns the body of a document specified by URL."""
    headers = {}
    if token_ttl:
        headers["X-aws-ec2-metadata-token"] = imdsv2_token(url, token_ttl, timeout)
    try:
        r = requests.get(url, headers=headers, timeout=timeout)
        r.raise_for_status()
    except requests.exceptions.RequestException as e:
        raise TransportError(f"could not fetch {url}: {e}") from e
    return r.content


def read_captured(path) -> bytes:
    """Returns a previously captured document body."""
    try:
        return pathlib.Path(path).read_bytes()
    except OSError as e:
        raise TransportError(f"could not read {path}: {e}") from e


def fetch_json(d: dict) -> dict:
    try:
        body = fetch(d.get("url", SIG_URL), float(d.get("timeout_sec", DEFAULT_TIMEOUT)),
                     d.get("token_ttl_sec"))
    except AwsIdError as e:
        return {"ok": False, "error": e.kind, "reason": str(e)}
    return {"ok": True, "pkcs7": body.decode("ascii", errors="replace")}


if __name__ == "__main__":
    try:
        res = fetch_json(read_json_stdin())
        write_json(res)
        sys.exit(0 if res["ok"] else 1)
    except Exception as e:
        print(f"error: {e}", file=sys.stderr)
        sys.exit(1)
