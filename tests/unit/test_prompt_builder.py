"""Unit tests for the ceramic prompt templates."""

from kilnworks.api.prompt_builder import (
    build_edit_prompt,
    build_generation_prompt,
    build_shot_prompt,
)


class TestTemplates:
    """Each template wraps the user prompt exactly once."""

    def test_generation_template(self):
        text = build_generation_prompt("blue glaze vase")

        assert text.startswith(
            "Generate a high-quality, photorealistic ceramic sculpture image: blue glaze vase. "
        )
        assert "handmade ceramic quality" in text

    def test_edit_template(self):
        text = build_edit_prompt("make the glaze matte")

        assert text.startswith(
            "Edit this ceramic sculpture image with the following changes: make the glaze matte. "
        )
        assert "Maintain the ceramic material properties" in text

    def test_shot_template(self):
        text = build_shot_prompt("three-quarter view")

        assert "professional studio product shot. three-quarter view." in text

    def test_prompt_is_trimmed(self):
        """Surrounding whitespace and a trailing full stop are dropped."""
        assert build_generation_prompt("  tall jug.  ") == build_generation_prompt("tall jug")
