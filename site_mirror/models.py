from pydantic import BaseModel, ConfigDict

from site_mirror.vars import STATIC_ASSET_OPTIMIZATION, WIDGET_SCRIPT_REWRITE


class ProxyErrorBody(BaseModel):
    """JSON body returned when the upstream cannot be reached."""

    error: str = "Proxy error"
    message: str
    url: str
    timestamp: str


class ProxyProfile(BaseModel):
    """Switches between the configuration profiles of the response pipeline."""

    model_config = ConfigDict(frozen=True)

    static_asset_optimization: bool = STATIC_ASSET_OPTIMIZATION
    widget_script_rewrite: bool = WIDGET_SCRIPT_REWRITE
