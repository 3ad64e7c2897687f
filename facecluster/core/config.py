"""Configuration settings for the face clustering service."""
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

COSINE_WEIGHT = 0.6
EUCLIDEAN_WEIGHT = 0.3
MANHATTAN_WEIGHT = 0.1

AVERAGE_SCORE_WEIGHT = 0.6
MAXIMUM_SCORE_WEIGHT = 0.3
COVERAGE_SCORE_WEIGHT = 0.1


class SimilarityWeights(BaseModel):
    """Weights blending the three metrics of the composite similarity."""
    cosine: float = Field(COSINE_WEIGHT, ge=0.0, le=1.0)
    euclidean: float = Field(EUCLIDEAN_WEIGHT, ge=0.0, le=1.0)
    manhattan: float = Field(MANHATTAN_WEIGHT, ge=0.0, le=1.0)


class ScoreWeights(BaseModel):
    """Weights used to rank candidate clusters for a face."""
    average: float = Field(AVERAGE_SCORE_WEIGHT, ge=0.0, le=1.0)
    maximum: float = Field(MAXIMUM_SCORE_WEIGHT, ge=0.0, le=1.0)
    coverage: float = Field(COVERAGE_SCORE_WEIGHT, ge=0.0, le=1.0)


class ClusteringSettings(BaseModel):
    """Tunable constants of the clustering engine.

    The defaults reproduce the heuristics the engine was calibrated with.
    Changing them changes clustering output, so they are only ever set
    explicitly (environment, .env or code), never from an estimate.

    Attributes:
        base_threshold: Minimum average similarity for a cluster to be eligible
        high_confidence_threshold: Maximum similarity that accepts a cluster outright
        max_comparison_faces: Number of member faces sampled per candidate cluster (K)
        min_samples_for_average: Sample count needed to accept on average similarity alone
        inter_cluster_sample_size: Faces sampled per cluster when estimating thresholds
        threshold_floor: Lower clamp for the estimated threshold
        threshold_ceiling: Upper clamp for the estimated threshold
        cluster_name_prefix: Prefix of auto-generated cluster names
    """
    base_threshold: float = Field(0.3, ge=0.0, le=1.0)
    high_confidence_threshold: float = Field(0.5, ge=0.0, le=1.0)
    max_comparison_faces: int = Field(10, ge=1)
    min_samples_for_average: int = Field(2, ge=1)
    similarity_weights: SimilarityWeights = Field(default_factory=SimilarityWeights)
    score_weights: ScoreWeights = Field(default_factory=ScoreWeights)
    inter_cluster_sample_size: int = Field(5, ge=1)
    threshold_floor: float = Field(0.4, ge=0.0, le=1.0)
    threshold_ceiling: float = Field(0.9, ge=0.0, le=1.0)
    cluster_name_prefix: str = "Unknown Person"


class Settings(BaseSettings):
    """Application settings.

    These settings are loaded from environment variables with the following precedence:
    1. Environment variables
    2. .env file
    3. Default values

    Nested clustering settings use a double underscore, e.g.
    ``CLUSTERING__BASE_THRESHOLD=0.35``.

    Attributes:
        DATABASE_URL: SQLAlchemy async database URL
        CLUSTERING: Clustering engine constants
        JOB_DEADLINE_SECONDS: Optional deadline applied to triggered clustering jobs
    """
    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_prefix="",  # No prefix for environment variables
        env_nested_delimiter="__"
    )

    # Core Settings
    PROJECT_NAME: str = "Face Clustering Service"
    VERSION: str = "0.1.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = "development"

    # Database Settings
    DATABASE_URL: str = "sqlite+aiosqlite:///./facecluster.db"
    DATABASE_ECHO: bool = False

    # Clustering Settings
    CLUSTERING: ClusteringSettings = Field(default_factory=ClusteringSettings)

    # Job Settings
    JOB_DEADLINE_SECONDS: Optional[float] = None

    # Optional settings with defaults
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000

settings = Settings()
