from __future__ import annotations

import logging
import textwrap
from typing import Iterable, List

from adgen.constants import CANVAS_CONSTRAINT, PROMPT_BATCH_SIZE
from adgen.schemas import AdConfig, TaglineMode
from adgen.services.backend import GenerationBackend

logger = logging.getLogger(__name__)

DESCRIBE_MODEL_INSTRUCTION = (
    "Analyze this model image in high detail. Describe their exact facial features "
    "(face shape, skin tone, eyes, expression), hair, and body type. This description "
    "will be used to ensure perfect likeness in generated images."
)
DESCRIBE_PRODUCT_INSTRUCTION = (
    "Analyze this product photo. Describe the clothing item's type, exact color, "
    "fabric texture, fit (e.g., oversized, slim), and any prints or details. This "
    "description will be used to perfectly replicate the item."
)

TAGLINE_INSTRUCTION = (
    'Based on this product description: "{description}", generate 3-5 professional, '
    "catchy e-commerce taglines. Range from bold one-word statements to motivational "
    "phrases."
)

SYSTEM_INSTRUCTION = textwrap.dedent(
    f"""\
    You are a professional e-commerce ad designer. Your task is to generate {PROMPT_BATCH_SIZE} detailed prompts for photorealistic ad images for a clothing brand.

    CRITICAL REQUIREMENTS:
    - **STRICT OUTPUT CANVAS**: All images must be in portrait orientation with a 4:5 aspect ratio at 1080x1350 pixels. Do not use borders, padding, or letterboxing. Fill the entire canvas. Frame subjects appropriately so nothing important is cut off by the 4:5 crop.
    - **Product and Model Integrity**: Each prompt MUST feature the EXACT SAME product from the description composited onto the model. Preserve all product details (texture, fit, design) and the model's exact facial features and identity for perfect likeness.
    - **Logo Placement**: If the user selects 'Brand Logo Overlay' and provides a logo image, you MUST incorporate that exact logo onto the final ad image in a professional and aesthetically pleasing way.

    - **MANDATORY PRODUCT COLOR SWATCHES**: Every generated ad image *must* contain a dedicated section displaying color variations of the product.
      - **Task**: For each color selected by the user, generate a photorealistic swatch of the product in that new color.
      - **Base Image**: Use the isolated product photograph as the source for these swatches.
      - **Recoloring Process**: Re-color the product while preserving its fabric texture, weave, shadows, highlights, and seams. The result should look like an authentic photograph of the product manufactured in the new color.
      - **Presentation**: Display the recolored swatches clearly within the ad, for example in a clean row at the bottom or in a graphic inset. Do NOT show the model in these swatches.
      - **Labeling**: Each swatch must be clearly labeled with its color name (e.g., "Red", "Black").

    - **Layouts and Elements**: Create layouts matching user-selected views. Vary backgrounds, lighting, and poses. Integrate the tagline and any additional elements (like size charts) seamlessly and professionally.
    - **Quality**: Aim for hyper-realistic, professional compositions that are clean, attractive, and drive conversions. Use photography and design terms to specify high quality (e.g., 'shot on Canon EOS R5, 85mm lens, f/2.8').
    - **Output**: The final output must be a JSON object containing a list of these detailed prompts.
    """
)


def describe_instruction(subject_kind: str) -> str:
    if subject_kind == "model":
        return DESCRIBE_MODEL_INSTRUCTION
    if subject_kind == "product":
        return DESCRIBE_PRODUCT_INSTRUCTION
    raise ValueError(f"unknown subject kind: {subject_kind!r}")


def resolve_tagline(config: AdConfig) -> str:
    """Return the tagline text that applies under the configured tagline mode."""

    if config.tagline_mode == TaglineMode.USER:
        return config.user_tagline
    return config.ai_tagline


def build_prompt_request(
    model_description: str,
    product_description: str,
    config: AdConfig,
) -> str:
    """Compose the user message sent alongside ``SYSTEM_INSTRUCTION``."""

    lines = [
        f"Model Description: {model_description}",
        f"Product Description: {product_description}",
        f"Brand Name: {config.brand_name or 'Not specified'}",
        f'Tagline: "{resolve_tagline(config)}"',
        "Color Variations for Swatches (recolor the isolated product photo to these colors): "
        + ", ".join(config.colors),
        f"Requested Layouts/Views: {', '.join(config.layouts)}",
        f"Additional Elements: {', '.join(config.additional_elements)}",
        "",
        CANVAS_CONSTRAINT,
    ]
    return "\n".join(lines)


def select_prompts(prompts: Iterable[str], requested: int) -> List[str]:
    """Keep the first ``requested`` prompts exactly as the service returned them."""

    return list(prompts)[: max(requested, 0)]


async def assemble_prompts(
    backend: GenerationBackend,
    model_description: str,
    product_description: str,
    config: AdConfig,
) -> List[str]:
    returned = await backend.synthesize_prompts(
        model_description, product_description, config
    )
    selected = select_prompts(returned, config.number_of_images)
    if len(selected) < config.number_of_images:
        logger.info(
            "[prompts] service returned fewer prompts than requested returned=%s requested=%s",
            len(selected),
            config.number_of_images,
        )
    return selected


__all__ = [
    "SYSTEM_INSTRUCTION",
    "assemble_prompts",
    "build_prompt_request",
    "describe_instruction",
    "resolve_tagline",
    "select_prompts",
]
