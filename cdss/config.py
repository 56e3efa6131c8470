"""
CDSS Core Configuration Management
Handles all evaluation-core settings using Pydantic Settings
"""

from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from pydantic import Field, field_validator, model_validator
from typing import Annotated, List


class Settings(BaseSettings):
    """CDSS core settings with validation"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True
    )

    # Environment
    environment: str = Field(default="development", pattern="^(development|production|test)$")
    log_level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")

    # Clinical Rules
    rules_enable_all: bool = Field(default=True)
    rules_dialyse: bool = Field(default=True)
    rules_cardiology: bool = Field(default=True)
    rules_ophthalmology: bool = Field(default=True)
    rules_general: bool = Field(default=True)
    rules_disabled_ids: Annotated[List[str], NoDecode] = Field(default_factory=list)

    # Drug Interactions
    interactions_max_medications: int = Field(default=50, ge=1, le=500)
    interactions_derive_renal_conditions: bool = Field(default=True)

    # Calculators
    qtc_default_formula: str = Field(default="bazett", pattern="^(bazett|fridericia|framingham)$")

    @field_validator("rules_disabled_ids", mode="before")
    @classmethod
    def parse_disabled_ids(cls, v):
        """Parse disabled rule IDs from string or list"""
        if isinstance(v, str):
            return [rule_id.strip() for rule_id in v.split(",") if rule_id.strip()]
        return v

    @model_validator(mode="after")
    def validate_rule_toggles(self) -> "Settings":
        """Refuse a production configuration that silences every rule module"""
        if self.environment == "production" and self.rules_enable_all:
            if not any([
                self.rules_dialyse,
                self.rules_cardiology,
                self.rules_ophthalmology,
                self.rules_general,
            ]):
                raise ValueError("At least one rule module must be enabled in production")
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.environment == "development"

    @property
    def is_test(self) -> bool:
        """Check if running in test"""
        return self.environment == "test"

    def enabled_modules(self) -> List[str]:
        """Rule modules switched on by the module toggles"""
        if not self.rules_enable_all:
            return []
        toggles = {
            "dialyse": self.rules_dialyse,
            "cardiology": self.rules_cardiology,
            "ophthalmology": self.rules_ophthalmology,
            "general": self.rules_general,
        }
        return [module for module, enabled in toggles.items() if enabled]


# Global settings instance
settings = Settings()
