#!/usr/bin/env python3
"""
idphoto - Document Photo Studio
Command-line entry point: fit -> (remove background) -> export -> (print sheet)
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional

from .background import BackgroundRemovalError, ProviderId, RemovalOrchestrator, RemovalProgress
from .compositor import check_file_size, encode_jpeg, export_filename
from .config import DEFAULT_PAPER, DEFAULT_PHOTO_COUNT, OUTPUT_BASE, PAPER_SIZES, REGISTRY
from .printing import print_markup
from .session import EditorSession
from .sheet import SheetGenerator, clamp_photo_count, plan_for
from .utils import ImageLoadError

logger = logging.getLogger(__name__)


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Create a document-compliant ID photo and print sheet.")
    p.add_argument("input", help="Path to the source photo (JPEG or PNG)")
    p.add_argument("--spec", "-s", default="usa", choices=REGISTRY.keys(), help="Document specification id")
    p.add_argument("--output-dir", "-o", default=OUTPUT_BASE, help="Directory for generated files")
    p.add_argument("--zoom", type=float, default=1.0, help="Zoom factor applied around the frame centre")
    p.add_argument("--pan", type=float, nargs=2, default=(0.0, 0.0), metavar=("DX", "DY"),
                   help="Pan in preview-frame pixels")
    p.add_argument("--brightness", type=float, default=100, help="Brightness percent (50-150)")
    p.add_argument("--contrast", type=float, default=100, help="Contrast percent (50-150)")
    p.add_argument("--remove-bg", action="store_true", help="Replace the background with the document colour")
    p.add_argument("--method", choices=[m.value for m in ProviderId], help="Preferred removal method")
    p.add_argument("--paper", choices=list(PAPER_SIZES), help="Also render a print sheet on this paper")
    p.add_argument("--count", type=int, default=DEFAULT_PHOTO_COUNT, help="Copies on the print sheet")
    p.add_argument("--print-html", action="store_true", help="Also write a printable HTML document")
    p.add_argument("--preview", action="store_true", help="Also save the editing preview with face guide")
    return p


def _log_progress(p: RemovalProgress) -> None:
    logger.info(f"[{p.method.value}] {p.progress:3d}% {p.status}")


def run(args: argparse.Namespace) -> int:
    spec = REGISTRY.get(args.spec)
    os.makedirs(args.output_dir, exist_ok=True)

    orchestrator = None
    if args.remove_bg:
        from .providers import default_providers
        orchestrator = RemovalOrchestrator(default_providers())

    session = EditorSession(spec, orchestrator)
    try:
        session.load_image(args.input)
    except ImageLoadError as e:
        logger.error(str(e))
        return 1

    session.set_brightness(args.brightness)
    session.set_contrast(args.contrast)
    if args.zoom != 1.0:
        session.zoom(args.zoom)
    session.pan(*args.pan)

    if args.remove_bg:
        preferred = ProviderId.parse(args.method) if args.method else None
        try:
            result = asyncio.run(session.remove_background(preferred, _log_progress))
            logger.info(f"Background removed with {result.method_used.value}")
        except BackgroundRemovalError as e:
            logger.error(f"Background removal failed: {e}")
            logger.error(f"Retry with --method {' or --method '.join(m.value for m in session.retry_methods)}")
            return 2
        finally:
            orchestrator.close()

    if args.preview:
        preview_path = os.path.join(args.output_dir, f"preview-{spec.id}.png")
        session.render_preview().save(preview_path)
        logger.info(f"Saved preview: {preview_path}")

    photo = session.export_photo()
    data = encode_jpeg(photo)
    photo_path = os.path.join(args.output_dir, export_filename(spec))
    with open(photo_path, 'wb') as f:
        f.write(data)
    size_check = check_file_size(data, spec)
    logger.info(f"Saved photo: {photo_path} ({photo.width}x{photo.height}px)")
    if not size_check.within_bounds:
        logger.warning(size_check.message)

    paper_key = args.paper or (DEFAULT_PAPER if args.print_html else None)
    if paper_key:
        paper = PAPER_SIZES[paper_key]
        plan = plan_for(paper, spec)
        count = clamp_photo_count(args.count, plan.total)
        if count == 0:
            logger.error(f"{spec.name} photos do not fit on {paper.name}")
            return 1
        if count != args.count:
            logger.warning(f"Photo count clamped to {count} ({plan.columns}x{plan.rows} fit on {paper.name})")

        sheet_data = encode_jpeg(SheetGenerator().create_sheet(photo, spec, paper, count))
        sheet_path = os.path.join(args.output_dir, export_filename(spec, paper))
        with open(sheet_path, 'wb') as f:
            f.write(sheet_data)
        logger.info(f"Saved print sheet: {sheet_path}")

        if args.print_html:
            html_path = os.path.splitext(sheet_path)[0] + '.html'
            with open(html_path, 'w', encoding='utf-8') as f:
                f.write(print_markup(sheet_data, paper))
            logger.info(f"Saved print document: {html_path}")

    return 0


def main(argv: Optional[list] = None) -> int:
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    args = _build_arg_parser().parse_args(argv)
    return run(args)


if __name__ == "__main__":
    sys.exit(main())
