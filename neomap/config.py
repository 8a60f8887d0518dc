"""Settings management for neomap.

Connection settings are loaded from environment variables (prefixed with
``NEOMAP_``) or a ``.env`` file, with defaults suitable for a local Neo4j.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Library settings loaded from environment variables.

    Attributes:
        neo4j_uri: Neo4j connection URI.
        neo4j_user: Neo4j username.
        neo4j_password: Neo4j password.
        neo4j_database: Neo4j database name.
        max_connection_pool_size: Maximum connections kept by the driver.
        connection_acquisition_timeout: Seconds to wait for a pooled connection.
        log_level: Suggested log level for host applications.
    """

    model_config = SettingsConfigDict(
        env_prefix="NEOMAP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Neo4j settings
    neo4j_uri: str = Field(
        default="bolt://localhost:7687",
        description="Neo4j connection URI",
    )
    neo4j_user: str = Field(default="neo4j", description="Neo4j username")
    neo4j_password: str = Field(default="password", description="Neo4j password")
    neo4j_database: str = Field(default="neo4j", description="Neo4j database name")

    # Driver settings
    max_connection_pool_size: int = Field(
        default=50,
        ge=1,
        description="Maximum connections in the driver pool",
    )
    connection_acquisition_timeout: float = Field(
        default=60.0,
        gt=0,
        description="Timeout in seconds for acquiring a pooled connection",
    )

    log_level: str = Field(default="INFO", description="Logging level")


@lru_cache
def get_settings() -> Settings:
    """Get cached library settings.

    Returns:
        The settings instance, loaded once per process.
    """
    return Settings()
