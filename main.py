#!/usr/bin/env python3
"""
Address Verifier — Entry Point
===============================

Demonstrates the full applicant workflow on a sample submission:
personal details → evidence photos → GPS capture → evaluation → report.

Usage:
    python main.py                          # Offline fallback evaluator
    OPENAI_API_KEY=sk-... python main.py    # LLM geocoding + distance check
"""

from __future__ import annotations

import asyncio
import io
import logging
import sys
from dataclasses import replace
from pathlib import Path

from dotenv import load_dotenv
from PIL import Image, ImageDraw

from address_verifier.config import Settings
from address_verifier.dashboard import create_placeholder
from address_verifier.geotag import fixed_position
from address_verifier.models import VerificationStatus
from address_verifier.render_pdf import render_pdf
from address_verifier.report import ReportView, Tone, build_report
from address_verifier.store import InMemoryVerificationStore
from address_verifier.workflow import VerificationWorkflow

load_dotenv()


# ─── Sample Applicant ────────────────────────────────────────────────

APPLICANT = {
    "name": "Ravi Kumar",
    "address": "Beach Road, Visakhapatnam, Andhra Pradesh 530017",
    "type_of_address": "Permanent",
    "mobile_number": "+91 98480 22338",
    "ownership_status": "Own",
}
STAY = ("2019-06-01", "2025-01-31")
DEVICE_POSITION = (17.6983203, 83.162918)


# ─── ANSI Color Constants ───────────────────────────────────────────

_RED = "\033[91m"
_YELLOW = "\033[93m"
_GREEN = "\033[92m"
_CYAN = "\033[96m"
_DIM = "\033[2m"
_BOLD = "\033[1m"
_RESET = "\033[0m"
_WIDTH = 72

_TONES = {Tone.PASS: _GREEN, Tone.FAIL: _RED, Tone.PENDING: _YELLOW}


# ─── Pretty Printer ─────────────────────────────────────────────────


def _sample_photo(label: str, color: str) -> bytes:
    """A 1600x1200 JPEG standing in for a phone camera shot."""
    img = Image.new("RGB", (1600, 1200), color)
    ImageDraw.Draw(img).text((40, 40), label, fill="white")
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=95)
    return buf.getvalue()


def print_report(view: ReportView) -> int:
    """Pretty-print the report with ANSI color codes.

    Returns:
        0 if the address passed, 1 otherwise.
    """
    print(f"\n{'=' * _WIDTH}")
    print(f"{_BOLD}{_CYAN}  {view.title.upper()}{_RESET}")
    print(f"{'=' * _WIDTH}")
    print(f"  Record:      {view.record_id}")
    print(f"  Reference:   {view.reference}")
    print(f"{'─' * _WIDTH}")

    for row in view.left_rows + view.right_rows:
        color = _TONES.get(row.tone, "")
        print(f"  {row.label + ':':<21}{color}{row.value}{_RESET if color else ''}")

    print(f"{'─' * _WIDTH}")
    print(f"  Claimed:     {view.claimed_text}")
    print(f"  Captured:    {view.captured_text}")
    print(f"  Distance:    {_BOLD}{view.distance_text}{_RESET} "
          f"{_DIM}(radius {view.map.radius_m} m){_RESET}")
    print(f"{'─' * _WIDTH}")

    for block in view.evidence:
        mark = f"{_GREEN}✔{_RESET}" if block.image else f"{_DIM}–{_RESET}"
        print(f"  {mark} {block.label}")
        print(f"      {_DIM}time: {block.timestamp}   gps: {block.location}{_RESET}")

    print(f"{'=' * _WIDTH}")
    if view.status == VerificationStatus.PASS:
        print(f"  {_GREEN}{_BOLD}ADDRESS VERIFIED{_RESET}")
    else:
        print(f"  {_RED}{_BOLD}ADDRESS NOT VERIFIED  --  status: {view.status.value}{_RESET}")
    print(f"{'=' * _WIDTH}\n")

    return 0 if view.status == VerificationStatus.PASS else 1


# ─── Main ────────────────────────────────────────────────────────────


async def run_demo(settings: Settings) -> ReportView:
    store = InMemoryVerificationStore()
    placeholder, link = create_placeholder(store, settings.public_base_url)
    print(f"  Applicant link: {link}")

    wf = VerificationWorkflow(store, record_id=placeholder.id, settings=settings)
    wf.update_personal(**APPLICANT)
    wf.set_period_of_stay(*STAY)
    wf.next()

    device = fixed_position(*DEVICE_POSITION)
    await asyncio.gather(
        wf.upload_evidence("selfie", _sample_photo("selfie", "#6366f1"), device),
        wf.upload_evidence("location_picture", _sample_photo("front door", "#0f766e"), device),
        wf.upload_evidence("id_proof_candidate", _sample_photo("id card", "#b45309"), device),
        wf.upload_evidence("landmark_picture", _sample_photo("landmark", "#be123c")),
    )
    wf.next()

    await wf.capture_location(device)
    reference = await wf.submit()
    print(f"  Submitted: {reference}")

    return build_report(store.get(placeholder.id))


def main():
    """Run the applicant workflow end to end, print the report and export the PDF."""
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level, format="%(levelname)s %(name)s: %(message)s")
    settings = replace(settings, completion_delay=0.0)

    print("\n  Starting Address Verifier demo...\n")
    view = asyncio.run(run_demo(settings))
    exit_code = print_report(view)

    out = Path(view.filename)
    out.write_bytes(render_pdf(view))
    print(f"  PDF written to {out.resolve()}\n")
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
