"""
Export Pipeline Configuration

Settings are read once from the environment (a local .env file is honoured)
and passed explicitly to the components that need them. Branding lives in its
own model so every generator receives the same value through its constructor.
"""

import os
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


# Corporate palette used by all three generators
DEFAULT_COLORS: Dict[str, str] = {
    "primary": "#2E7D32",
    "secondary": "#8D6E63",
    "accent": "#F9A825",
    "neutral": "#9E9E9E",
    "text": "#212121",
    "text_light": "#757575",
    "success": "#43A047",
    "warning": "#FB8C00",
    "danger": "#E53935",
}


class BrandingConfig(BaseModel):
    """Company identity rendered in report headers and footers."""
    company_name: str = "Farm Records"
    tagline: str = "Livestock Management System"
    website: Optional[str] = None
    colors: Dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_COLORS))
    # Optional TTF file registered with the PDF engine on startup
    font_path: Optional[str] = None
    font_name: str = "Helvetica"
    bold_font_name: str = "Helvetica-Bold"

    def color(self, name: str) -> str:
        return self.colors.get(name) or DEFAULT_COLORS.get(name, "#000000")

    def argb(self, name: str) -> str:
        """Colour as the 6-digit hex string openpyxl expects."""
        return self.color(name).lstrip("#").upper()

    @classmethod
    def from_env(cls) -> "BrandingConfig":
        return cls(
            company_name=os.environ.get("BRANDING_COMPANY_NAME", "Farm Records"),
            tagline=os.environ.get("BRANDING_TAGLINE", "Livestock Management System"),
            website=os.environ.get("BRANDING_WEBSITE") or None,
            font_path=os.environ.get("BRANDING_FONT_PATH") or None,
        )


class Settings(BaseModel):
    """Runtime settings for the export pipeline."""
    output_dir: str = "exports"
    max_file_size_mb: int = Field(default=100, gt=0)
    file_retention_hours: int = Field(default=24, gt=0)
    queue_poll_interval: float = Field(default=5.0, gt=0)
    retry_base_delay: float = Field(default=1.0, ge=0)
    max_active_jobs_per_user: int = Field(default=10, gt=0)
    cleanup_interval_minutes: int = Field(default=60, gt=0)
    # PROCESSING jobs older than this are treated as abandoned by a dead worker
    stale_job_minutes: int = Field(default=30, gt=0)
    job_store: str = "memory"
    records_seed_path: Optional[str] = None
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    branding: BrandingConfig = Field(default_factory=BrandingConfig)

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from EXPORT_* and SUPABASE_* environment variables."""
        return cls(
            output_dir=os.environ.get("EXPORT_OUTPUT_DIR", "exports"),
            max_file_size_mb=int(os.environ.get("EXPORT_MAX_FILE_SIZE_MB", "100")),
            file_retention_hours=int(os.environ.get("EXPORT_FILE_RETENTION_HOURS", "24")),
            queue_poll_interval=float(os.environ.get("EXPORT_QUEUE_POLL_INTERVAL", "5.0")),
            retry_base_delay=float(os.environ.get("EXPORT_RETRY_BASE_DELAY", "1.0")),
            max_active_jobs_per_user=int(os.environ.get("EXPORT_MAX_ACTIVE_JOBS_PER_USER", "10")),
            cleanup_interval_minutes=int(os.environ.get("EXPORT_CLEANUP_INTERVAL_MINUTES", "60")),
            stale_job_minutes=int(os.environ.get("EXPORT_STALE_JOB_MINUTES", "30")),
            job_store=os.environ.get("EXPORT_JOB_STORE", "memory").lower(),
            records_seed_path=os.environ.get("FARM_RECORDS_SEED") or None,
            supabase_url=os.environ.get("SUPABASE_URL") or os.environ.get("NEXT_PUBLIC_SUPABASE_URL"),
            supabase_key=os.environ.get("SUPABASE_SERVICE_ROLE_KEY") or os.environ.get("SUPABASE_ANON_KEY"),
            branding=BrandingConfig.from_env(),
        )
