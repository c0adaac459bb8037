"""
Tests for the PDF report generator.

Run with: python -m pytest tests/test_pdf_generator.py -v
"""

import re

import pytest

from farm_exports.config import BrandingConfig
from farm_exports.generators.pdf_generator import PDFReportGenerator
from farm_exports.generators.sections import (
    CURRENCY, INTEGER, NUMBER, PERCENT, TEXT, format_value, summary_kind,
)
from farm_exports.jobs.errors import GenerationError
from farm_exports.jobs.job_types import PDFOptions
from farm_exports.reports.data_types import GenericBundle

from tests.conftest import june_parameters

MEDIA_BOX = re.compile(rb"/MediaBox\s*\[\s*0\s+0\s+([\d.]+)\s+([\d.]+)")


def page_size(path):
    with open(path, "rb") as f:
        match = MEDIA_BOX.search(f.read())
    return float(match.group(1)), float(match.group(2))


@pytest.fixture
def generator():
    generator = PDFReportGenerator(BrandingConfig())
    yield generator
    generator.close()


# =============================================================================
# RENDERING
# =============================================================================

class TestRendering:
    """Documents for every template."""

    @pytest.mark.parametrize("template_id", ["financial", "inventory", "reproductive", "health"])
    def test_renders_each_template(self, generator, provider, tmp_path, template_id):
        bundle = provider.fetch(template_id, june_parameters())
        output = str(tmp_path / f"{template_id}.pdf")

        result = generator.generate(bundle, PDFOptions(), output)

        assert result.path == output
        assert result.size_bytes > 0
        with open(output, "rb") as f:
            assert f.read(5) == b"%PDF-"

    def test_empty_bundle(self, generator, tmp_path):
        output = str(tmp_path / "mystery.pdf")
        result = generator.generate(GenericBundle(template_id="mystery"), PDFOptions(), output)
        assert result.size_bytes > 0

    def test_mixed_value_types(self, generator, tmp_path):
        bundle = GenericBundle(
            template_id="weights",
            summary={"total_x": "abc", "total_weighed": 2},
            details=[{"code": "M-001", "weight": 3.5}, {"code": "M-002", "weight": "n/a"}],
        )

        result = generator.generate(bundle, PDFOptions(), str(tmp_path / "weights.pdf"))

        assert result.size_bytes > 0

    def test_landscape_orientation(self, generator, provider, tmp_path):
        bundle = provider.fetch("inventory", june_parameters())
        output = str(tmp_path / "inventory.pdf")

        generator.generate(bundle, PDFOptions(orientation="landscape"), output)

        width, height = page_size(output)
        assert width > height

    def test_letter_page_size(self, generator, provider, tmp_path):
        bundle = provider.fetch("health", june_parameters())
        output = str(tmp_path / "health.pdf")

        generator.generate(bundle, PDFOptions(page_size="Letter", include_charts=False), output)

        assert page_size(output) == pytest.approx((612.0, 792.0))


# =============================================================================
# RENDERING ENGINE
# =============================================================================

class TestEngine:
    """Lazy start and release of the shared rendering engine."""

    def test_started_on_first_use_and_released(self, generator, tmp_path):
        assert not generator.engine_started

        generator.generate(GenericBundle(template_id="mystery"), PDFOptions(), str(tmp_path / "a.pdf"))
        assert generator.engine_started

        generator.close()
        assert not generator.engine_started

    def test_missing_font_fails_generation(self, tmp_path):
        generator = PDFReportGenerator(BrandingConfig(font_path=str(tmp_path / "missing.ttf")))

        with pytest.raises(GenerationError, match="PDF generation failed: Failed to start rendering engine"):
            generator.generate(GenericBundle(template_id="mystery"), PDFOptions(), str(tmp_path / "a.pdf"))
        assert not generator.engine_started


# =============================================================================
# VALUE FORMATTING
# =============================================================================

class TestFormatValue:
    """Cell text for typed columns."""

    @pytest.mark.parametrize("value,kind,expected", [
        (1234.5, CURRENCY, "$1,234.50"),
        (71.428, PERCENT, "71.43%"),
        (1200, INTEGER, "1,200"),
        ("abc", NUMBER, "abc"),
        ("n/a", CURRENCY, "n/a"),
        (None, INTEGER, ""),
    ])
    def test_format_value(self, value, kind, expected):
        assert format_value(value, kind) == expected

    def test_text_summary_value_is_not_numeric(self):
        assert summary_kind("total_x", "abc") == TEXT
        assert summary_kind("total_income", 420.0) == CURRENCY
