"""Command-line helper for generating a batch of e-commerce ad images.

This utility mirrors the web workflow:

1. Load the model photo, product photo and optional logo from disk.
2. Optionally ask the service for tagline suggestions and pick the first one.
3. Analyse both photos, synthesise creative prompts and render the ads with
   bounded concurrency, printing progress as images complete.

Example usage::

    python adgen_workflow.py --model model.jpg --product tee.png --color Black --color Red
    python adgen_workflow.py --model m.jpg --product p.jpg --config ad.json --output-dir out/
"""
from __future__ import annotations

import argparse
import asyncio
import base64
import json
import mimetypes
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from adgen.config import get_settings
from adgen.errors import AdGenError
from adgen.models import UploadedFile
from adgen.schemas import GeneratedImage, ProgressEvent, TaglineMode
from adgen.services.genai_client import GenAIClient
from adgen.services.previews import PreviewRegistry
from adgen.services.session import AdSession


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate e-commerce ad images")
    parser.add_argument("--model", type=Path, required=True, help="Path to the model photo")
    parser.add_argument("--product", type=Path, required=True, help="Path to the product photo")
    parser.add_argument("--logo", type=Path, help="Optional brand logo image")
    parser.add_argument(
        "--config",
        type=Path,
        help="JSON file with ad configuration fields (brand_name, colors, layouts, ...)",
    )
    parser.add_argument(
        "--color",
        action="append",
        dest="colors",
        help="Color variation to include; repeat for several colors",
    )
    parser.add_argument("--count", type=int, help="Number of ads to generate (1-8)")
    parser.add_argument(
        "--suggest-tagline",
        action="store_true",
        help="Fetch AI tagline suggestions and use the first one",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("outputs"),
        help="Directory to write generated ads and the prompts used",
    )
    return parser.parse_args(argv)


def load_configuration(path: Optional[Path]) -> Dict[str, Any]:
    if path is None:
        return {}
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def load_upload(path: Path) -> UploadedFile:
    if not path.exists():
        raise FileNotFoundError(f"Image not found: {path}")
    content_type = mimetypes.guess_type(path.name)[0] or "image/png"
    return UploadedFile(data=path.read_bytes(), content_type=content_type, filename=path.name)


def export_outputs(output_dir: Path, images: List[GeneratedImage]) -> List[Path]:
    output_dir.mkdir(parents=True, exist_ok=True)
    written: List[Path] = []
    for number, image in enumerate(images, start=1):
        _header, encoded = image.src.split(",", 1)
        path = output_dir / f"ad-{number}.png"
        path.write_bytes(base64.b64decode(encoded))
        written.append(path)

    prompts = [{"id": image.id, "prompt": image.prompt} for image in images]
    (output_dir / "prompts.json").write_text(
        json.dumps(prompts, ensure_ascii=False, indent=2), encoding="utf-8"
    )
    return written


def _print_event(event: ProgressEvent) -> None:
    if event.progress:
        print(event.progress, flush=True)


async def run_workflow(args: argparse.Namespace, backend: Any = None) -> List[GeneratedImage]:
    settings = get_settings()
    backend = backend or GenAIClient(settings.genai)
    session = AdSession("cli", PreviewRegistry())
    try:
        session.set_file("model", load_upload(args.model))
        session.set_file("product", load_upload(args.product))
        if args.logo:
            session.set_file("logo", load_upload(args.logo))

        changes = load_configuration(args.config)
        if args.colors:
            changes["colors"] = args.colors
        if args.count:
            changes["number_of_images"] = args.count
        session.update_config(changes)

        if args.suggest_tagline and session.config.tagline_mode == TaglineMode.AI:
            taglines = await session.request_tagline_suggestions(backend)
            print(f"Tagline suggestions: {', '.join(taglines) or '(none)'}")

        images = await session.submit_generation(
            backend,
            max_concurrency=settings.generation.max_concurrency,
            on_event=_print_event,
        )
        run = session.current_run
        if run is not None:
            for index, reason in run.failures():
                print(f"Ad {index + 1} failed: {reason}", file=sys.stderr)
        return images
    finally:
        session.close()


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    try:
        images = asyncio.run(run_workflow(args))
    except (AdGenError, ValidationError) as exc:
        raise SystemExit(f"Generation failed: {exc}") from exc

    written = export_outputs(args.output_dir, images)
    print(f"\nGenerated {len(written)} ad(s) in {args.output_dir.resolve()}")


if __name__ == "__main__":
    main()
