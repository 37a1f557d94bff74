#!/usr/bin/env python3
"""
cli.py - awsid - Pinned verification of EC2 instance identity documents
============================================================================
Copyright 2025 Nathanael Ritz

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

     http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.

============================================================================

Retrieves the PKCS#7 signature of the instance identity document from the
metadata service and verifies it against the AWS certificate pinned in
awsid_work.lib.anchor. The metadata endpoint is unauthenticated, so nothing
in the fetched bytes is trusted: any certificate the signature carries is
thrown away and only the pinned one is used.

Pipeline (each stage aborts the run on failure, nothing is retried):
  anchor   -> decode the pinned certificate, check it is self-signed
  fetch    -> GET the PKCS#7 body (or read a captured one)
  envelope -> re-armor and parse the SignedData
  verify   -> substitute the anchor, verify every signer
  emit     -> print the verified document

Exit status: 0 verified, 1 rejected, 2 bad configuration, 3 transport failure.
"""

import argparse
import os
import sys
import time
import pathlib
import functools
import yaml

from awsid_work.lib import (
    anchor,              # Pinned AWS certificate
    imds_fetch,          # Metadata service transport
    manifest_validate,   # Manifest shape checks
    pkcs7_decode,        # Stripped PKCS#7 -> SignedEnvelope
    pkcs7_verify,        # Anchor substitution + signer verification
)
from awsid_work.lib.errors import AwsIdError

# Global timer for performance metrics
SCRIPT_START_TIME = 0
VERBOSE = False

def log(role, msg):
    """Progress logging with timing information (stderr, --verbose only)."""
    if not VERBOSE:
        return
    elapsed = time.time() - SCRIPT_START_TIME
    print(f"[{role}] {elapsed:.2f}s - {msg}", file=sys.stderr, flush=True)

def log_err(role, msg):
    """Error logging to stderr."""
    elapsed = time.time() - SCRIPT_START_TIME
    print(f"[{role}] {elapsed:.2f}s - {msg}", file=sys.stderr, flush=True)

# === Configuration helpers ===
def read_yaml(path):
    """Read manifest file (YAML format)."""
    return manifest_validate.load_manifest(path)

def ensure_dir(p):
    """Create directory if it doesn't exist."""
    pathlib.Path(p).mkdir(parents=True, exist_ok=True)

def write_bytes_atomic(p_str, b, role="SYS"):
    """
    Atomically write bytes to file, so a reader never sees a
    partially written document.
    """
    p = pathlib.Path(p_str)
    ensure_dir(p.parent)
    tmp_p = p.with_suffix(p.suffix + ".tmp")
    tmp_p.write_bytes(b)
    tmp_p.replace(p)
    log(role, f"PUBLISHED: {p_str}")

def resolve_settings(args, m):
    """CLI flags win over AWSID_URL, which wins over the manifest."""
    fetch_cfg = m.get("fetch", {})
    out_cfg = m.get("output", {})

    token_ttl = None
    if args.imdsv2 or fetch_cfg.get("imdsv2", False):
        token_ttl = args.token_ttl or fetch_cfg.get("token_ttl_sec", 60)

    return {
        "url": args.url or os.environ.get("AWSID_URL") or fetch_cfg.get("url") or imds_fetch.SIG_URL,
        "timeout": args.timeout if args.timeout is not None else fetch_cfg.get("timeout_sec", imds_fetch.DEFAULT_TIMEOUT),
        "token_ttl": token_ttl,
        "document": args.document,
        "out": args.out or out_cfg.get("path"),
    }

def build_source(settings):
    """Returns a zero-argument callable producing the raw PKCS#7 body."""
    if settings["document"]:
        return functools.partial(imds_fetch.read_captured, settings["document"])
    return functools.partial(imds_fetch.fetch, settings["url"],
                             timeout=settings["timeout"], token_ttl=settings["token_ttl"])

def _stage(name, fn, *args):
    try:
        return fn(*args)
    except AwsIdError as e:
        e.stage = name
        raise

def fetch_and_verify(source, pinned, role="VERIFY"):
    """
    Fetch, decode and verify one signed document.

    `pinned` is the already decoded anchor; whatever certificates the
    envelope brings are replaced by it before verification.
    """
    raw = _stage("fetch", source)
    log(role, f"Fetched {len(raw)} bytes")

    envelope = _stage("envelope", pkcs7_decode.decode_envelope, raw)
    log(role, f"Decoded SignedData: {len(envelope.signer_infos)} signer(s), "
              f"{len(envelope.certificates)} embedded certificate(s) discarded")

    content = _stage("verify", pkcs7_verify.verify, envelope, pinned)
    log(role, "Signature VERIFIED against pinned certificate.")
    return content

def run(args):
    """
    Verifier main process. Returns the exit status.
    """
    global SCRIPT_START_TIME, VERBOSE
    SCRIPT_START_TIME = time.time()
    VERBOSE = args.verbose
    role = "VERIFY"

    log(role, "AWSID START")

    # Load configuration from manifest
    m = {}
    if args.manifest:
        try:
            m = read_yaml(args.manifest)
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
            log_err(role, f"FATAL: could not read manifest {args.manifest}: {e}")
            return 2
        errors = manifest_validate.validate(m)
        if errors:
            log_err(role, f"FATAL: invalid manifest: {', '.join(errors)}")
            return 2
    settings = resolve_settings(args, m)

    try:
        pinned = _stage("anchor", anchor.load_pinned_anchor)
        log(role, f"Pinned certificate loaded: {pinned.subject.rfc4514_string()}")
        content = fetch_and_verify(build_source(settings), pinned, role)
    except AwsIdError as e:
        log_err(role, f"FATAL: {e.stage} failed: {e.kind}: {e}")
        return 3 if e.retryable else 1

    if settings["out"]:
        try:
            write_bytes_atomic(settings["out"], content, role)
        except OSError as e:
            log_err(role, f"FATAL: output failed: {e}")
            return 1
    else:
        sys.stdout.buffer.write(content + b"\n")
        sys.stdout.flush()
    return 0

def main(argv=None):
    """
    Main entry point for the awsid CLI.
    """
    ap = argparse.ArgumentParser(
        prog="awsid",
        description="Fetch and verify the EC2 instance identity document against a pinned certificate."
    )
    ap.add_argument("--url", help=f"Signature URL (default: {imds_fetch.SIG_URL})")
    ap.add_argument("--timeout", type=float, help="Fetch timeout in seconds")
    ap.add_argument("--imdsv2", action="store_true",
                    help="Request an IMDSv2 session token before fetching")
    ap.add_argument("--token-ttl", type=int, help="IMDSv2 token TTL in seconds")
    ap.add_argument("--document", help="Verify a captured PKCS#7 body instead of fetching")
    ap.add_argument("--manifest", help="Path to manifest YAML file")
    ap.add_argument("--out", help="Write the verified document to this file")
    ap.add_argument("-v", "--verbose", action="store_true", help="Log stage progress to stderr")

    args = ap.parse_args(argv)
    if args.timeout is not None and args.timeout <= 0:
        ap.error("--timeout must be positive")
    if args.token_ttl is not None and not 1 <= args.token_ttl <= manifest_validate.TOKEN_TTL_MAX:
        ap.error(f"--token-ttl must be between 1 and {manifest_validate.TOKEN_TTL_MAX}")
    sys.exit(run(args))

if __name__ == "__main__":
    main()
