#!/usr/bin/env python3
"""Build and sign a rule-pack manifest for publishing.

Copies every ``*.json`` pack from the pack directory into ``<out>/packs/``,
writes ``manifest.json`` with a ``sha256-<hex>`` checksum per pack, signs the
exact manifest bytes with RSA-PSS/SHA-256 (salt length 32) and writes the
base64 signature to ``manifest.sig.txt`` next to ``public_key.pem``.

The output directory can be served as-is and pointed to with
``OTCFLOW_RULES_BASE_URL``.

Usage::

    # Generate a fresh key pair and sign the bundled packs
    uv run python scripts/sign_manifest.py --generate-key --private-key-out keys/rules.pem --out dist/rules

    # Sign with an existing private key
    uv run python scripts/sign_manifest.py --private-key keys/rules.pem --out dist/rules
"""

from __future__ import annotations

import argparse
import base64
import json
import sys
from datetime import datetime, timezone
from pathlib import Path

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from rich.console import Console
from rich.table import Table

from otcflow_rules.constants import (
    MANIFEST_PATH,
    PUBLIC_KEY_PATH,
    SIGNATURE_PATH,
    SIGNATURE_SALT_LENGTH,
)
from otcflow_rules.loader import compute_checksum
from otcflow_rules.ruleset import find_repo_root, normalize_pack

# ---------------------------------------------------------------------------
# Signing helpers
# ---------------------------------------------------------------------------


def load_or_generate_key(path: Path | None, generate: bool) -> rsa.RSAPrivateKey:
    """Load a PEM private key, or generate a 2048-bit one when asked."""
    if generate:
        return rsa.generate_private_key(public_exponent=65537, key_size=2048)
    if path is None:
        raise SystemExit("Either --private-key or --generate-key is required")
    key = serialization.load_pem_private_key(path.read_bytes(), password=None)
    if not isinstance(key, rsa.RSAPrivateKey):
        raise SystemExit(f"{path} is not an RSA private key")
    return key


def check_private_key_out(path: Path | None, out_dir: Path) -> Path:
    """Return where a generated private key may be written.

    The output directory is published as-is, so the key must live outside it.
    """
    if path is None:
        raise SystemExit("--generate-key requires --private-key-out")
    resolved = path.resolve()
    if resolved.is_relative_to(out_dir.resolve()):
        raise SystemExit(f"Refusing to write the private key inside the published directory {out_dir}")
    return resolved


def write_private_key(key: rsa.RSAPrivateKey, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(
        key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    path.chmod(0o600)


def sign(manifest: bytes, key: rsa.RSAPrivateKey) -> str:
    signature = key.sign(
        manifest,
        padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=SIGNATURE_SALT_LENGTH),
        hashes.SHA256(),
    )
    return base64.b64encode(signature).decode("ascii")


def build_manifest(pack_dir: Path, out_dir: Path) -> dict:
    """Copy packs into ``out_dir/packs`` and return the manifest document."""
    packs_out = out_dir / "packs"
    packs_out.mkdir(parents=True, exist_ok=True)
    entries = []
    for path in sorted(pack_dir.glob("*.json")):
        content = path.read_bytes()
        # Validate before publishing; raises RulePackFormatError if malformed
        pack = normalize_pack(json.loads(content))
        (packs_out / path.name).write_bytes(content)
        entries.append({
            "id": pack.id,
            "name": pack.name,
            "version": pack.version,
            "path": f"packs/{path.name}",
            "checksum": compute_checksum(content),
        })
    return {
        "generatedAt": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "packs": entries,
    }


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Build and sign a rule-pack manifest.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--pack-dir",
        type=Path, default=None,
        help="Directory of pack JSON files (default: rules/packs from repo root)",
    )
    parser.add_argument(
        "--out",
        type=Path, required=True,
        help="Output directory for manifest, signature, key and packs",
    )
    parser.add_argument(
        "--private-key",
        type=Path, default=None,
        help="PEM-encoded RSA private key used to sign",
    )
    parser.add_argument(
        "--generate-key",
        action="store_true",
        help="Generate a new key pair (requires --private-key-out)",
    )
    parser.add_argument(
        "--private-key-out",
        type=Path, default=None,
        help="Where to write a generated private key; must be outside --out",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    console = Console()

    pack_dir = args.pack_dir or find_repo_root() / "rules" / "packs"
    if not pack_dir.is_dir():
        console.print(f"[red]Pack directory not found:[/] {pack_dir}")
        sys.exit(1)

    out_dir: Path = args.out
    private_out = check_private_key_out(args.private_key_out, out_dir) if args.generate_key else None
    out_dir.mkdir(parents=True, exist_ok=True)
    key = load_or_generate_key(args.private_key, args.generate_key)

    manifest = build_manifest(pack_dir, out_dir)
    # The signature covers these exact bytes; never re-serialise after signing
    manifest_bytes = json.dumps(manifest, indent=2).encode("utf-8")
    (out_dir / MANIFEST_PATH).write_bytes(manifest_bytes)
    (out_dir / SIGNATURE_PATH).write_text(sign(manifest_bytes, key) + "\n", encoding="ascii")
    (out_dir / PUBLIC_KEY_PATH).write_bytes(
        key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )
    if private_out is not None:
        write_private_key(key, private_out)
        console.print(f"[yellow]Private key written to {private_out}[/]")

    table = Table(title=f"Signed manifest ({out_dir / MANIFEST_PATH})")
    table.add_column("Pack", style="bold")
    table.add_column("Version")
    table.add_column("Checksum", style="dim")
    for entry in manifest["packs"]:
        table.add_row(entry["id"], entry["version"], entry["checksum"])
    console.print(table)


if __name__ == "__main__":
    main()
