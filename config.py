from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class LedgerSettings(BaseSettings):
    """Service settings, read from the environment at startup."""

    model_config = SettingsConfigDict(populate_by_name=True, extra="ignore")

    database_url: str = Field("sqlite:////tmp/supplychain.db", validation_alias="DATABASE_URL")
    base_url: str = Field("http://localhost:8000", validation_alias="BASE_URL")
    admin: str = Field("deployer", min_length=1, validation_alias="LEDGER_ADMIN")
    # smallest currency unit, 0.001 with 18 decimals
    mint_fee: int = Field(10**15, ge=0, validation_alias="MINT_FEE")
    token_name: str = Field("SupplyChainNFT", validation_alias="TOKEN_NAME")
    token_symbol: str = Field("SCNFT", validation_alias="TOKEN_SYMBOL")
    log_level: str = Field("INFO", validation_alias="LOG_LEVEL")

settings = LedgerSettings()
