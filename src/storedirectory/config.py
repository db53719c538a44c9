"""Application settings loaded from environment variables."""

from pydantic import Field
from pydantic_settings import BaseSettings

# Live merges always pause at least this long before the first write.
MIN_MERGE_DELAY_SECONDS = 1.0

DEFAULT_INCLUDE_CATEGORIES = [
    "appliance store",
    "home appliance store",
    "appliance repair service",
    "refrigerator store",
    "used appliance store",
    "scratch and dent",
    "appliance outlet",
]

DEFAULT_EXCLUDE_CATEGORIES = [
    "grocery store",
    "furniture store",
    "department store",
    "hardware store",
    "thrift store",
    "second hand store",
    "home goods store",
    "plumber",
    "hvac contractor",
    "discount store",
    "electronics store",
    "shopping mall",
    "convenience store",
    "restaurant supply store",
    "car stereo store",
    "camera store",
    "consignment shop",
    "grill store",
    "kitchen remodeler",
    "cabinet store",
    "home automation company",
    "audio visual equipment supplier",
    "home audio store",
    "variety store",
    "electrical supply store",
    "indian grocery store",
    "kitchen supply store",
]


class Settings(BaseSettings):
    """All configuration is loaded from environment variables prefixed with SD_."""

    # Database
    database_url: str = ""

    # Snapshots
    snapshot_dir: str = "/tmp/store-directory-snapshots"
    page_size: int = 1000

    # Imports
    confidence_threshold: float = 0.85
    include_categories: list[str] = DEFAULT_INCLUDE_CATEGORIES
    exclude_categories: list[str] = DEFAULT_EXCLUDE_CATEGORIES
    category_keyword: str = "appliance"

    # Merges
    merge_delay_seconds: float = Field(5.0, ge=MIN_MERGE_DELAY_SECONDS)
    dedup_export_dir: str = "/tmp/store-directory-dedup"

    model_config = {"env_file": ".env", "env_prefix": "SD_"}


def get_settings() -> Settings:
    """Return a Settings instance built from the current environment."""
    return Settings()
