import asyncio
import json

import pytest

import adgen_workflow
from adgen.errors import PreconditionError


def _write_inputs(tmp_path, png_bytes):
    model = tmp_path / "model.png"
    product = tmp_path / "product.jpg"
    model.write_bytes(png_bytes((20, 20, 20)))
    product.write_bytes(png_bytes((220, 220, 220)))
    return model, product


def test_run_workflow_generates_and_exports(tmp_path, png_bytes, backend_factory, capsys) -> None:
    model, product = _write_inputs(tmp_path, png_bytes)
    config = tmp_path / "ad.json"
    config.write_text(json.dumps({"brand_name": "Aurora", "layouts": ["Front Only"]}))
    args = adgen_workflow.parse_args(
        [
            "--model", str(model),
            "--product", str(product),
            "--config", str(config),
            "--color", "Black",
            "--color", "Red",
            "--count", "3",
            "--suggest-tagline",
            "--output-dir", str(tmp_path / "out"),
        ]
    )
    backend = backend_factory(fail_indices={2})

    images = asyncio.run(adgen_workflow.run_workflow(args, backend=backend))

    assert [image.prompt for image in images] == ["prompt 0", "prompt 1"]
    sent_config = backend.prompt_calls[0][2]
    assert sent_config.colors == ["Black", "Red"]
    assert sent_config.brand_name == "Aurora"
    assert sent_config.ai_tagline == "Bold."

    written = adgen_workflow.export_outputs(args.output_dir, images)
    assert [path.name for path in written] == ["ad-1.png", "ad-2.png"]
    assert written[0].read_bytes() == b"prompt 0"
    prompts = json.loads((args.output_dir / "prompts.json").read_text())
    assert [entry["prompt"] for entry in prompts] == ["prompt 0", "prompt 1"]

    captured = capsys.readouterr()
    assert "Tagline suggestions: Bold., Wear the calm" in captured.out
    assert "Generating 3/3 (up to 3 at a time)..." in captured.out
    assert "Ad 3 failed: no image data" in captured.err


def test_run_workflow_requires_colors(tmp_path, png_bytes, backend_factory) -> None:
    model, product = _write_inputs(tmp_path, png_bytes)
    args = adgen_workflow.parse_args(["--model", str(model), "--product", str(product)])
    backend = backend_factory()

    with pytest.raises(PreconditionError):
        asyncio.run(adgen_workflow.run_workflow(args, backend=backend))
    assert backend.total_calls == 0


def test_load_upload_guesses_content_type(tmp_path, png_bytes) -> None:
    _model, product = _write_inputs(tmp_path, png_bytes)

    upload = adgen_workflow.load_upload(product)

    assert upload.content_type == "image/jpeg"
    assert upload.filename == "product.jpg"


def test_missing_files_are_reported(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        adgen_workflow.load_upload(tmp_path / "nope.png")
    with pytest.raises(FileNotFoundError):
        adgen_workflow.load_configuration(tmp_path / "nope.json")


def test_main_reports_invalid_configuration(tmp_path, png_bytes) -> None:
    model, product = _write_inputs(tmp_path, png_bytes)
    bad_config = tmp_path / "ad.json"
    bad_config.write_text(json.dumps({"layouts": ["Hologram"]}))

    with pytest.raises(SystemExit, match="Generation failed"):
        adgen_workflow.main(
            ["--model", str(model), "--product", str(product), "--color", "Black", "--count", "9"]
        )
    with pytest.raises(SystemExit, match="Generation failed"):
        adgen_workflow.main(
            ["--model", str(model), "--product", str(product), "--config", str(bad_config)]
        )
