# salevest/core/config.py
from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # --- Core ---
    DATABASE_URL: str = "sqlite:///./salevest.db"
    LOG_LEVEL: str = "INFO"

    # --- Deployment identities ---
    ADMIN_ADDRESS: str = "0x00000000000000000000000000000000000000a1"
    SALE_ADDRESS: str = "0x0000000000000000000000000000000000005a1e"
    VESTING_ADDRESS: str = "0x000000000000000000000000000000000000de57"
    TOKEN_ADDRESS: str = "0x0000000000000000000000000000000000007070"

    # --- Token ---
    TOKEN_DECIMALS: int = 18
    INITIAL_CUSTODY_AMOUNT: str = "0"  # base units, decimal string (may exceed 2**63)

    # --- Vesting defaults (applied once at bootstrap when all are set) ---
    VESTING_CLIFF_SECONDS: int | None = None
    VESTING_START_TIME: int | None = None
    VESTING_DURATION_SECONDS: int | None = None
    VESTING_TGE_TIME: int | None = None
    VESTING_TGE_BASIS_POINTS: int | None = None

    def initial_vesting_parameters(self) -> dict | None:
        values = {
            "cliff_seconds": self.VESTING_CLIFF_SECONDS,
            "start_time": self.VESTING_START_TIME,
            "duration_seconds": self.VESTING_DURATION_SECONDS,
            "tge_time": self.VESTING_TGE_TIME,
            "tge_basis_points": self.VESTING_TGE_BASIS_POINTS,
        }
        if any(v is None for v in values.values()):
            return None
        return values


settings = Settings()
