#!/usr/bin/env python3
"""API client integration test for the OTC Flow server.

Acts as a pure HTTP client against a running server.  For every sample
transcript it:

  1. posts the text to ``/api/v1/transcripts/parse`` and compares the
     extracted patient fields, answers and pathway guess with the expected
     values shipped alongside the sample
  2. builds an intake from the extracted values and posts it to
     ``/api/v1/evaluate`` for the guessed pathway
  3. flags HTTP errors and mismatched extractions; an ``incomplete``
     evaluation is reported but expected when answers are still missing

Usage::

    # Install deps (first time only)
    uv pip install httpx rich

    # Run every sample once
    uv run python scripts/run_client_test.py

    # One sample with full JSON responses
    uv run python scripts/run_client_test.py -s uti_classic -vv
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import dataclass, field
from typing import Any

import httpx
from rich.console import Console
from rich.table import Table

from otcflow_rules.extraction import SAMPLE_TRANSCRIPTS

# ---------------------------------------------------------------------------
# APIClient - thin httpx wrapper
# ---------------------------------------------------------------------------

class APIClient:
    """Async HTTP client for the OTC Flow server API."""

    def __init__(self, base_url: str, timeout: float = 30.0):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> APIClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()

    async def health_check(self) -> dict | None:
        """Return the health payload, or None if the server is unreachable."""
        try:
            resp = await self._client.get("/health")  # type: ignore[union-attr]
        except (httpx.ConnectError, httpx.TimeoutException):
            return None
        return resp.json() if resp.status_code == 200 else None

    async def parse_transcript(self, text: str) -> dict:
        return await self._post("/api/v1/transcripts/parse", json={"text": text})

    async def evaluate(self, rule_pack_id: str, intake: dict) -> dict:
        return await self._post(
            "/api/v1/evaluate",
            json={"rulePackId": rule_pack_id, "intake": intake},
        )

    async def _post(self, path: str, json: Any) -> dict:
        """POST, retry once on timeout."""
        try:
            resp = await self._client.post(path, json=json)  # type: ignore[union-attr]
        except httpx.TimeoutException:
            resp = await self._client.post(path, json=json)  # type: ignore[union-attr]
        resp.raise_for_status()
        return resp.json()


# ---------------------------------------------------------------------------
# SampleResult / comparison helpers
# ---------------------------------------------------------------------------

@dataclass
class SampleResult:
    """Outcome of one sample transcript run."""

    sample_id: str
    status: str = "success"  # success | mismatch | failed
    rule_pack_id: str = ""
    outcome: str = ""
    headline: str = ""
    mismatches: list[str] = field(default_factory=list)
    error: str | None = None


def compare_extraction(expected: dict, extraction: dict) -> list[str]:
    """Return a human-readable line for every expected value not extracted."""
    problems: list[str] = []
    for key in ("complaintId", "rulePackId"):
        if expected.get(key, "") != extraction.get(key, ""):
            problems.append(f"{key}: expected {expected.get(key)!r}, got {extraction.get(key)!r}")
    for group in ("patient", "answers"):
        extracted = extraction.get(group) or {}
        for name, value in (expected.get(group) or {}).items():
            actual = (extracted.get(name) or {}).get("value")
            if actual != value:
                problems.append(f"{group}.{name}: expected {value!r}, got {actual!r}")
    return problems


def intake_from_extraction(extraction: dict) -> dict:
    """Accept every extracted value as-is, the way "apply all" would."""
    patient = {
        name: entry["value"]
        for name, entry in (extraction.get("patient") or {}).items()
        if entry.get("value") not in (None, "", "unknown")
    }
    answers = {
        name: entry["value"]
        for name, entry in (extraction.get("answers") or {}).items()
        if entry.get("value") not in (None, "", "unknown")
    }
    return {"patient": patient, "answers": answers}


# ---------------------------------------------------------------------------
# SampleRunner - drives one transcript through parse + evaluate
# ---------------------------------------------------------------------------

class SampleRunner:
    def __init__(self, client: APIClient, console: Console, verbosity: int = 0):
        self._client = client
        self._console = console
        self._verbosity = verbosity

    async def run(self, sample: dict) -> SampleResult:
        result = SampleResult(sample_id=sample["id"])
        try:
            extraction = await self._client.parse_transcript(sample["text"])
            self._dump("parse", extraction)
            result.mismatches = compare_extraction(sample["expected"], extraction)
            result.rule_pack_id = extraction.get("rulePackId", "")

            if result.rule_pack_id:
                evaluation = await self._client.evaluate(
                    result.rule_pack_id, intake_from_extraction(extraction),
                )
                self._dump("evaluate", evaluation)
                result.outcome = evaluation.get("outcome", "")
                result.headline = evaluation.get("headline", "")
                if self._verbosity >= 1:
                    for warning in extraction.get("warnings", []):
                        self._console.print(f"    [yellow]warning:[/] {warning}")
                    for entry in evaluation.get("trace", []):
                        self._console.print(f"    [{entry['status']}] {entry['label']}", markup=False)
        except httpx.HTTPError as exc:
            result.status = "failed"
            result.error = str(exc)
            return result

        if result.mismatches:
            result.status = "mismatch"
        return result

    def _dump(self, label: str, payload: dict) -> None:
        if self._verbosity >= 2:
            self._console.print(f"[dim]{label} response:[/]")
            self._console.print_json(json.dumps(payload))


# ---------------------------------------------------------------------------
# ResultCollector - final summary
# ---------------------------------------------------------------------------

class ResultCollector:
    """Collect sample results for the final summary."""

    def __init__(self) -> None:
        self.results: list[SampleResult] = []

    def add(self, result: SampleResult) -> None:
        self.results.append(result)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status != "success")

    def print_summary(self, console: Console) -> None:
        console.print()
        console.rule("[bold]Sample Summary")

        table = Table()
        table.add_column("Sample", style="bold")
        table.add_column("Status")
        table.add_column("Pathway")
        table.add_column("Outcome")
        table.add_column("Headline")
        colours = {"success": "green", "mismatch": "yellow", "failed": "red"}
        for r in self.results:
            colour = colours.get(r.status, "white")
            table.add_row(
                r.sample_id,
                f"[{colour}]{r.status}[/]",
                r.rule_pack_id or "-",
                r.outcome or "-",
                r.headline or (r.error or "-"),
            )
        console.print(table)

        for r in self.results:
            for line in r.mismatches:
                console.print(f"  [yellow]{r.sample_id}[/] {line}")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="API client integration test for the OTC Flow server.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--base-url",
        default="http://localhost:8080",
        help="Server base URL (default: http://localhost:8080)",
    )
    parser.add_argument(
        "-s", "--sample",
        type=str, default=None,
        help="Filter samples (comma-separated ids, e.g. 'uti_classic,feverpain_high')",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count", default=0,
        help="Increase verbosity (-v for trace lines, -vv for full JSON)",
    )
    parser.add_argument(
        "--timeout",
        type=float, default=30.0,
        help="HTTP request timeout in seconds (default: 30)",
    )
    return parser.parse_args()


async def main() -> None:
    args = parse_args()
    console = Console()

    samples = SAMPLE_TRANSCRIPTS
    if args.sample:
        wanted = [s.strip() for s in args.sample.split(",")]
        known = {s["id"] for s in SAMPLE_TRANSCRIPTS}
        for sample_id in wanted:
            if sample_id not in known:
                console.print(f"[red]Unknown sample:[/] '{sample_id}'")
                console.print(f"Available: {', '.join(sorted(known))}")
                sys.exit(1)
        samples = [s for s in SAMPLE_TRANSCRIPTS if s["id"] in wanted]

    collector = ResultCollector()
    async with APIClient(args.base_url, timeout=args.timeout) as client:
        health = await client.health_check()
        if health is None:
            console.print(
                f"[red]Server at {args.base_url} is not reachable. "
                f"Is the server running?[/]"
            )
            sys.exit(1)
        if health.get("status") != "ok":
            console.print(f"[yellow]Server is degraded: {health.get('packs', 0)} packs loaded[/]")
        else:
            console.print(f"[green]Server health check passed[/] ({health['packs']} packs)")

        runner = SampleRunner(client, console, verbosity=args.verbose)
        for sample in samples:
            console.print(f"[bold]{sample['id']}[/] [dim]{sample['description']}[/]")
            collector.add(await runner.run(sample))

    collector.print_summary(console)

    # Exit code: 1 if any sample failed or mismatched
    if collector.failed > 0:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
