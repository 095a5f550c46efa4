"""
Runtime configuration.

Defaults live on the model; each can be overridden by an environment
variable (a .env file is honoured when the caller runs load_dotenv()).
"""

import os
from typing import Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from .index import DEFAULT_BODY_SEARCH_LIMIT
from .ingest import DEFAULT_BATCH_SIZE, DEFAULT_PROGRESS_INTERVAL
from .timeline import DEFAULT_CHART_WIDTH


ENV_VARS: Dict[str, str] = {
    'batch_size': 'HAR_BATCH_SIZE',
    'progress_interval': 'HAR_PROGRESS_INTERVAL',
    'chart_width': 'HAR_CHART_WIDTH',
    'body_search_limit': 'HAR_BODY_SEARCH_LIMIT',
    'log_level': 'HAR_LOG_LEVEL',
}


class ExplorerConfig(BaseModel):
    """Settings shared by the loader, the query engine and the timeline"""
    model_config = ConfigDict(frozen=True)

    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1, description="Entries per EntriesAdded event")
    progress_interval: int = Field(default=DEFAULT_PROGRESS_INTERVAL, ge=1, description="Entries between progress events")
    chart_width: int = Field(default=DEFAULT_CHART_WIDTH, ge=1, description="Waterfall columns")
    body_search_limit: int = Field(default=DEFAULT_BODY_SEARCH_LIMIT, ge=0, description="Largest body searched, in UTF-8 bytes")
    log_level: str = Field(default="INFO", description="Logging level name")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ExplorerConfig":
        """
        Build configuration from environment variables.

        Raises:
            pydantic.ValidationError: If a value is not a valid number or is out of range
        """
        environ = os.environ if environ is None else environ
        values = {
            field: environ[variable]
            for field, variable in ENV_VARS.items()
            if environ.get(variable)
        }
        return cls(**values)
