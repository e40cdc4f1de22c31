"""Fixed prompt templates for ceramic sculpture generation.

The user only writes the variable part of a prompt (what to make, or what to
change). The templates here wrap it with the material description that keeps
every result looking like fired, glazed clay.

Template Use
------------
- **Generation** (``build_generation_prompt``): text-to-image, with up to
  three optional style references placed before the text.
- **Edit** (``build_edit_prompt``): the first reference is the image being
  edited; the template asks the model to keep its ceramic qualities.
- **Shot** (``build_shot_prompt``): client-side prefix for product
  photography of an existing piece. The result is sent through the edit
  template by the gateway.

Usage
-----
::

    text = build_generation_prompt("blue glaze vase")
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Fixed template sections.
# ---------------------------------------------------------------------------

_GENERATION_TEMPLATE = (
    "Generate a high-quality, photorealistic ceramic sculpture image: {prompt}. "
    "Create detailed clay-like surfaces with natural ceramic textures, professional pottery "
    "craftsmanship, and sculptural forms. Include realistic glazing effects, surface "
    "imperfections, and artistic detailing that shows the handmade ceramic quality."
)

_EDIT_TEMPLATE = (
    "Edit this ceramic sculpture image with the following changes: {prompt}. "
    "Maintain the ceramic material properties, clay-like textures, and sculptural form while "
    "making the requested modifications. Preserve the artistic integrity and craftsmanship "
    "details."
)

_SHOT_TEMPLATE = (
    "Photograph this ceramic piece as a professional studio product shot. {prompt}. "
    "Neutral seamless backdrop, soft diffused lighting, accurate glaze colour and sharp "
    "focus across the whole form."
)


def _clean(prompt: str) -> str:
    # Templates supply their own full stop.
    return prompt.strip().rstrip(".")


def build_generation_prompt(prompt: str) -> str:
    """Combine a user prompt with the ceramic style-amplification template."""
    return _GENERATION_TEMPLATE.format(prompt=_clean(prompt))


def build_edit_prompt(prompt: str) -> str:
    """Wrap a requested change with the material-preserving edit instructions."""
    return _EDIT_TEMPLATE.format(prompt=_clean(prompt))


def build_shot_prompt(prompt: str) -> str:
    """Prefix a user prompt with the product-shot direction used by ``shot`` mode."""
    return _SHOT_TEMPLATE.format(prompt=_clean(prompt))
