#!/usr/bin/env python3
"""
Render a FOR-ATA-057 report from an inspection JSON file.

Usage:
    python render_report.py <inspection.json> [--preview] [--compact] [--unpadded] [--codes]

Example:
    python render_report.py ../samples/inspection_lim.json --codes

The JSON file holds one inspection in the ``fetch_inspection`` shape
(``equipment`` and ``observations`` lists included). The output is written
next to the input file.
"""

import sys
import json
import os
import logging

from werkzeug.utils import secure_filename

import report_service
from matrix_layout import HeaderMode, LayoutOptions
from signature_loader import SignatureImageLoader

USAGE = "Usage: python render_report.py <inspection.json> [--preview] [--compact] [--unpadded] [--codes]"
FLAGS = {"--preview", "--compact", "--unpadded", "--codes"}


def render_report(json_path: str, preview: bool = False, compact: bool = False,
                  padded: bool = True, codes: bool = False):
    """
    Render one inspection file and print a summary.

    Args:
        json_path: Path to the inspection JSON file
        preview: Write the HTML preview instead of the PDF export
        compact: Compact preview (ignored for the PDF)
        padded: Pad to the pre-printed row counts
        codes: Use item codes instead of descriptions as column headers

    Returns:
        Output path, or None on failure
    """
    if not os.path.exists(json_path):
        print(f"Error: File not found: {json_path}")
        return None

    try:
        with open(json_path, encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, ValueError) as e:
        print(f"Error: Could not read inspection JSON: {e}")
        return None

    options = LayoutOptions(pad_rows=padded, header_mode=HeaderMode.CODES if codes else HeaderMode.TEXT)
    loader = SignatureImageLoader(allow_local_files=True)

    print(f"Rendering report from: {json_path}")
    print("=" * 60)

    prepared = report_service.prepare_report(raw, options, load_images=False)
    model, layout = prepared.model, prepared.layout

    print("\n[1] Report Model:")
    print("-" * 60)
    print(f"  Form: {model.form_code} v{model.form_version} ({model.form_issue_date})")
    print(f"  Station: {model.station or '-'}")
    print(f"  Date: {model.inspection_date or '-'}")
    print(f"  Inspector: {model.inspector_name or '-'}")
    print(f"  Equipment: {len(model.equipment)}")
    source = "derived from checklist" if model.observations_derived else "explicit"
    print(f"  Observations: {len(model.observations)} ({source})")
    print(f"  Pending maintenance replies: {'yes' if model.has_pending_observations else 'no'}")

    print("\n[2] Layout:")
    print("-" * 60)
    print(f"  Equipment rows: {len(layout.equipment_rows)}")
    print(f"  Observation rows: {len(layout.observation_rows)}")
    print(f"  Checklist columns: {len(layout.column_codes)} ({options.header_mode.value} headers)")

    base = os.path.splitext(os.path.abspath(json_path))[0]
    if preview:
        out_path = f"{base}.html"
        html = report_service.preview_report(raw, options, compact=compact, loader=loader)
        with open(out_path, "w", encoding="utf-8") as f:
            f.write(html)
    else:
        pdf_bytes, filename = report_service.export_report(raw, options, loader=loader)
        out_path = os.path.join(os.path.dirname(base), secure_filename(filename) or "Inspeccion.pdf")
        with open(out_path, "wb") as f:
            f.write(pdf_bytes)

    print("\n[3] Output:")
    print("-" * 60)
    print(f"  Written: {out_path}")
    print("\n" + "=" * 60)
    print("Done.")
    return out_path


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING)

    args = sys.argv[1:]
    paths = [a for a in args if not a.startswith("--")]
    unknown = [a for a in args if a.startswith("--") and a not in FLAGS]

    if len(paths) != 1 or unknown:
        print(USAGE)
        sys.exit(1)

    result = render_report(
        paths[0],
        preview="--preview" in args,
        compact="--compact" in args,
        padded="--unpadded" not in args,
        codes="--codes" in args,
    )
    sys.exit(0 if result else 1)
