"""
Generator Base

Result types shared by the format strategies and the strategy interface the
dispatcher talks to.
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List, Optional

from farm_exports.config import BrandingConfig
from farm_exports.jobs.errors import ExportError, GenerationError
from farm_exports.reports.data_types import BundleBase

logger = logging.getLogger(__name__)


@dataclass
class GeneratedFile:
    path: str
    size_bytes: int
    description: str = ""
    mime_type: Optional[str] = None

    @property
    def file_name(self) -> str:
        return os.path.basename(self.path)


@dataclass
class GenerationResult:
    """Primary output path plus every file the strategy wrote (primary first)."""
    path: str
    size_bytes: int
    files: List[GeneratedFile] = field(default_factory=list)
    mime_type: Optional[str] = None

    @property
    def file_name(self) -> str:
        return os.path.basename(self.path)


class ReportGenerator(ABC):
    """A format strategy: renders one bundle to disk."""

    format_label = "Report"

    def __init__(self, branding: Optional[BrandingConfig] = None):
        self.branding = branding or BrandingConfig()

    def generate(self, bundle: BundleBase, options: Any, output_path: str) -> GenerationResult:
        """Render ``bundle`` to ``output_path``; failures become GenerationError."""
        logger.info(f"Generating {self.format_label} report: {output_path}")
        try:
            result = self._render(bundle, options, output_path)
        except ExportError:
            raise
        except Exception as e:
            logger.error(f"Error generating {self.format_label}: {e}")
            raise GenerationError(self.format_label, e)
        logger.info(f"{self.format_label} generated successfully: {result.path} ({result.size_bytes} bytes)")
        return result

    @abstractmethod
    def _render(self, bundle: BundleBase, options: Any, output_path: str) -> GenerationResult:
        ...

    def close(self):
        """Release long-lived resources; generators without any keep the default."""
