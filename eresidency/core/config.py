"""
Configuration management for the e-Residency Backend application.
Handles environment variables and application settings for residency applications,
document storage and credential minting.
"""

from typing import Any, Dict, List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "e-Residency Backend"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # CORS
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://localhost:8000",
    ]
    ALLOWED_HOSTS: List[str] = [
        "localhost",
        "api.eresidency.example.com",
    ]

    # Database - MongoDB
    MONGODB_URL: str = "mongodb://localhost:27017"
    MONGODB_DATABASE: str = "eresidency"
    MONGODB_USERNAME: Optional[str] = None
    MONGODB_PASSWORD: Optional[str] = None

    # MongoDB Environment Variables (from .env)
    MONGO_URI: Optional[str] = None
    MONGO_DB_NAME: Optional[str] = None

    # Redis for sessions and the public verification cache
    REDIS_URI: str = "redis://localhost:6379"
    REDIS_DB: int = 0
    SESSION_COOKIE_NAME: str = "residency_session_id"
    VERIFY_CACHE_TTL_SECONDS: int = 60

    # Security
    BCRYPT_ROUNDS: int = 12

    # Blockchain Configuration (one active chain)
    EVM_RPC_URL: str = "https://rpc-amoy.polygon.technology"
    EVM_CHAIN_ID: int = 80002
    EVM_PRIVATE_KEY: Optional[str] = None
    RESIDENCY_NFT_CONTRACT_ADDRESS: Optional[str] = None
    RESIDENCY_NFT_DEPLOY_BLOCK: int = 0
    EVM_RPC_TIMEOUT_SECONDS: int = 30
    MINT_RECEIPT_TIMEOUT_SECONDS: int = 120
    MINT_TIMEOUT_SECONDS: float = 150.0
    METADATA_BASE_URI: str = "https://api.eresidency.example.com/metadata"

    # File storage
    UPLOAD_DIR: str = "uploads"
    UPLOAD_URL_PREFIX: str = "/uploads"
    CERTIFICATE_DIR: str = "public/certificates"
    CERTIFICATE_URL_PREFIX: str = "/certificates"
    MAX_UPLOAD_SIZE_BYTES: int = 10 * 1024 * 1024  # 10MiB
    MAX_FILES_PER_UPLOAD: int = 5
    PUBLIC_VERIFY_BASE_URL: str = "https://eresidency.example.com/verify"

    # Maintenance
    RECONCILE_INTERVAL_SECONDS: int = 300  # 0 disables the background loop
    RECONCILE_GRACE_PERIOD_SECONDS: int = 600
    RECONCILE_DROPPED_TX_HORIZON_SECONDS: int = 3600  # unknown to the node for this long counts as dropped

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    @field_validator("ALLOWED_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator("ALLOWED_HOSTS", mode="before")
    @classmethod
    def parse_allowed_hosts(cls, v):
        """Parse allowed hosts from string or list."""
        if isinstance(v, str):
            return [host.strip() for host in v.split(",")]
        return v

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment setting."""
        allowed_envs = ["development", "staging", "production"]
        if v not in allowed_envs:
            raise ValueError(f"Environment must be one of {allowed_envs}")
        return v

    def get_evm_config(self) -> Dict[str, Any]:
        """Get the active chain configuration (secrets excluded)."""
        return {
            "rpc_url": self.EVM_RPC_URL,
            "chain_id": self.EVM_CHAIN_ID,
            "contract_address": self.RESIDENCY_NFT_CONTRACT_ADDRESS,
            "deploy_block": self.RESIDENCY_NFT_DEPLOY_BLOCK,
        }

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


# Create global settings instance
settings = Settings()


def get_mongodb_url() -> str:
    """
    Get MongoDB connection URL with authentication if credentials are provided.

    Returns:
        str: MongoDB connection URL
    """
    if settings.MONGO_URI:
        return settings.MONGO_URI

    if settings.MONGODB_USERNAME and settings.MONGODB_PASSWORD:
        base_url = settings.MONGODB_URL.replace("mongodb://", "")
        if "@" not in base_url:  # No existing auth in URL
            return f"mongodb://{settings.MONGODB_USERNAME}:{settings.MONGODB_PASSWORD}@{base_url}"

    return settings.MONGODB_URL


def get_mongodb_database_name() -> str:
    """
    Get MongoDB database name.

    Returns:
        str: MongoDB database name
    """
    if settings.MONGO_DB_NAME:
        return settings.MONGO_DB_NAME

    return settings.MONGODB_DATABASE


def is_production() -> bool:
    """Check if running in production environment."""
    return settings.ENVIRONMENT == "production"
