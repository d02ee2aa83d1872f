from __future__ import annotations

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Minimal standard generator modulus; a usable seed lies strictly inside (0, 2^31 - 1).
_LCG_MODULUS = 2_147_483_647


class Settings(BaseSettings):
    """Validated settings (env-driven), keeping config out of code for easy extension."""

    model_config = SettingsConfigDict(
        # Support both "repo root/.env" and "backend/.env" (local dev)
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    out_dir: str = Field(default="out", alias="OUT_DIR")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Live updates are pushed process-wide, not per connection.
    broadcast_interval_s: float = Field(default=10.0, gt=0.0, le=3600.0, alias="BROADCAST_INTERVAL_S")
    rng_seed: int = Field(default=12345, alias="CITYPULSE_RNG_SEED")

    cors_allow_origins: str = Field(default="*", alias="CORS_ALLOW_ORIGINS")

    @field_validator("rng_seed")
    @classmethod
    def _seed_in_generator_range(cls, v: int) -> int:
        if not 0 < v < _LCG_MODULUS:
            raise ValueError(f"rng seed must be in 1..{_LCG_MODULUS - 1}")
        return v

    @model_validator(mode="after")
    def _normalise_log_level(self) -> "Settings":
        self.log_level = str(self.log_level or "INFO").strip().upper() or "INFO"
        return self

    def cors_origins(self) -> list[str]:
        origins = [item.strip() for item in self.cors_allow_origins.split(",")]
        return [item for item in origins if item] or ["*"]


settings = Settings()
