# Configuration management

from pydantic_settings import BaseSettings  # type: ignore
from functools import lru_cache
from typing import List, Optional


class Settings(BaseSettings):
    # Storage
    data_dir: str = "./data"
    database_url: str = "sqlite:///./data/ingest.db"
    persist_profiles: bool = False

    # Application
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = True

    # Profiling
    profile_top_samples: int = 1024
    profile_bottom_samples: int = 32
    # None = exact, unbounded distinct counting
    profile_distinct_cap: Optional[int] = None
    profile_flag_ratio: float = 0.9
    image_min_samples: int = 3  # tunable heuristic
    image_min_ratio: float = 0.5
    split_min_hits: int = 3
    split_min_ratio: float = 0.3
    split_min_confidence: float = 0.5

    # Row normalization
    multi_value_fields: List[str] = [
        "tags", "genres", "actors", "characters", "aliases",
        "partners", "powers", "categories", "keywords",
    ]
    plural_denylist: List[str] = ["is", "has", "was", "ids", "status"]

    # Coercion
    null_literals: List[str] = ["null", "n/a", "na", "nil", "none", ""]
    numeric_hint_fields: List[str] = [
        "id", "count", "index", "position", "rank", "duration", "size",
        "budget", "revenue", "popularity", "score", "rating", "price",
        "quantity", "voteCount", "voteAverage", "runtime", "year",
        "page", "pages", "length", "height", "width",
    ]
    boolean_prefixes: List[str] = ["is", "has"]
    two_digit_year_pivot: int = 70  # tunable heuristic
    wrap_scalar_to_array: bool = False

    # Import
    import_batch_size: int = 500
    export_csv_on_finish: bool = False

    # Observability
    metrics_enabled: bool = True

    class Config:
        env_prefix = "INGEST_"
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    return Settings()
