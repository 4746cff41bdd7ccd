"""
Module configuration models.

A module is a named logical database target; the connector receives a
mapping of module name -> ModuleConfig and builds one pool per entry.
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr


class ProductTypeEnum(str, Enum):
    """Supported database product types (mysql, postgres)."""

    MYSQL = "mysql"
    POSTGRES = "postgres"


class TransactionState(str, Enum):
    """Lifecycle of a TransactionHandle."""

    OPEN = "open"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    CLOSED = "closed"


class TLSMaterial(BaseModel):
    """Paths to PEM files used to secure the connection. Any may be omitted."""

    model_config = ConfigDict(frozen=True)

    ca: str | None = None
    key: str | None = None
    cert: str | None = None


class ModuleConfig(BaseModel):
    """Connection details for one module. Immutable once built."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    host: str
    user: str
    password: SecretStr = SecretStr("")
    database: str
    port: int = Field(default=3306, ge=1, le=65535)
    ssl: bool | TLSMaterial = False
    product_type: ProductTypeEnum = ProductTypeEnum.MYSQL
    # False: every acquire opens a one-off connection that is disconnected on close
    use_pool: bool = True
    pool_size: int | None = Field(default=None, ge=1)


def parse_module_configs(raw: Mapping[str, Any]) -> dict[str, ModuleConfig]:
    """
    Validate a mapping of module name -> config (ModuleConfig or plain dict).

    Raises pydantic.ValidationError on an invalid entry and ValueError on an
    empty module name.
    """
    modules: dict[str, ModuleConfig] = {}
    for name, cfg in raw.items():
        if not name or not isinstance(name, str):
            raise ValueError(f"Invalid module name {name!r}")
        modules[name] = (
            cfg if isinstance(cfg, ModuleConfig) else ModuleConfig.model_validate(cfg)
        )
    return modules
