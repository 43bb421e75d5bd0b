from pydantic import BaseModel, ConfigDict, Field


class VSphereConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    server: str | None = None
    user: str | None = None
    port: int = 443
    verify_ssl: bool = False
    password_env: str = "VC_PASSWORD"


class InventoryConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    extra_definition_dirs: list[str] = Field(default_factory=list)
    output_dir: str | None = None
    vsphere: VSphereConfig = Field(default_factory=VSphereConfig)
