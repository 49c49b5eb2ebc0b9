"""Configuration loading from environment variables and the .env file."""

from enum import Enum
from pathlib import Path
from typing import Annotated, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

_DEFAULT_BLACKLIST = ["meme", "scam", "inu", "doge"]
_DEFAULT_SEED_TOKENS = [
    "0x311935Cd80B76769bF2ecC9D8Ab7635b2139cf82",
    "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
]
_BASE_USDC = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"


class LogFormat(str, Enum):
    """Log output format."""

    JSON = "json"
    CONSOLE = "console"


class Settings(BaseSettings):
    """Runtime settings.

    Field names match the environment variables of the deployment
    (POSITION_SIZE, STOP_LOSS, DRY_RUN, ...).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==================== Trading ====================
    position_size: float = Field(default=10.0, gt=0, description="Quote units (USDC) per entry")
    max_slippage: float = Field(default=1.0, ge=0, le=50, description="Max slippage (percent)")
    min_liquidity: float = Field(default=100_000.0, ge=0, description="Min pool liquidity (USD)")
    stop_loss: float = Field(
        default=10.0,
        gt=0,
        lt=100,
        description="Stop loss distance below entry (percent)",
    )

    # ==================== Entry criteria ====================
    min_volume_24h: float = Field(default=50_000.0, ge=0, description="Min 24h volume (USD)")
    min_price_change: float = Field(default=5.0, ge=0, description="Min abs 24h change (percent)")
    min_market_cap: float = Field(default=100_000.0, ge=0, description="Min FDV (USD)")
    blacklist: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(_DEFAULT_BLACKLIST),
        description="Symbol substrings never traded (comma separated)",
    )

    # ==================== Timing ====================
    scan_interval: int = Field(default=30_000, ge=1_000, description="Scan interval (ms)")
    max_positions: int = Field(default=3, ge=1, description="Max concurrent positions")

    # ==================== Safety ====================
    dry_run: bool = Field(default=False, description="Simulate every execution")

    # ==================== Market data ====================
    chain_id: str = Field(default="base", description="DexScreener chain identifier")
    dexscreener_url: str = Field(default="https://api.dexscreener.com")
    seed_tokens: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: list(_DEFAULT_SEED_TOKENS),
        description="Token addresses looked up when the trending feed is empty",
    )
    http_timeout: float = Field(default=5.0, gt=0, description="Feed request timeout (seconds)")

    # ==================== Execution ====================
    rpc_url: str = Field(default="https://mainnet.base.org")
    chain_numeric_id: int = Field(default=8453, description="EVM chain id used for routing")
    wallet_path: Path = Field(
        default=Path.home() / ".openclaw" / "workspace" / "base-wallet.json",
        description="Wallet private key file",
    )
    swap_api_url: str = Field(default="https://api.0x.org/swap/allowance-holder")
    swap_api_key: str = Field(default="", description="Swap routing API key")
    quote_token_symbol: str = Field(default="USDC")
    quote_token_address: str = Field(default=_BASE_USDC)
    swap_timeout: float = Field(default=15.0, gt=0, description="Swap API timeout (seconds)")

    # ==================== Logging ====================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: LogFormat = Field(default=LogFormat.CONSOLE)

    # ==================== Storage ====================
    state_dir: Path = Field(
        default=Path("data/state"),
        description="Directory holding positions.json and trades.log",
    )

    @field_validator("blacklist", mode="before")
    @classmethod
    def parse_blacklist(cls, v: str | list[str]) -> list[str]:
        """Split a comma separated list and normalize to lowercase."""
        items = v.split(",") if isinstance(v, str) else v
        return [str(item).strip().lower() for item in items if str(item).strip()]

    @field_validator("seed_tokens", mode="before")
    @classmethod
    def parse_seed_tokens(cls, v: str | list[str]) -> list[str]:
        items = v.split(",") if isinstance(v, str) else v
        return [str(item).strip() for item in items if str(item).strip()]

    @field_validator("state_dir", "wallet_path", mode="before")
    @classmethod
    def parse_path(cls, v: str | Path) -> Path:
        """Convert strings to Path objects and expand ~."""
        return (Path(v) if isinstance(v, str) else v).expanduser()

    def ensure_directories(self) -> None:
        """Create the state directory if missing."""
        self.state_dir.mkdir(parents=True, exist_ok=True)

    @property
    def scan_interval_seconds(self) -> float:
        return self.scan_interval / 1000.0

    @property
    def stop_loss_fraction(self) -> float:
        return self.stop_loss / 100.0

    @property
    def positions_file(self) -> Path:
        return self.state_dir / "positions.json"

    @property
    def trades_file(self) -> Path:
        return self.state_dir / "trades.log"

    def validate_for_live(self) -> list[str]:
        """Return the missing prerequisites for live execution."""
        missing = []
        if not self.wallet_path.exists():
            missing.append(f"WALLET_PATH ({self.wallet_path})")
        if not self.rpc_url:
            missing.append("RPC_URL")
        if not self.swap_api_url:
            missing.append("SWAP_API_URL")
        return missing


# Global settings instance (lazy)
_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
