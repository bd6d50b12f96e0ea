"""
Configuration of a run, and the logging setup used by the entrypoints
"""

import os
from typing import Any

from pydantic import BaseModel, Field

envvar_prefix = "SUBWORLDS_"


class Config(BaseModel):
    staging_dir: str | None = Field(
        None,
        description="directory for staged records, must be visible to every process. A fresh temp dir if not given",
    )
    coordinator_host: str | None = Field(
        None,
        description="host under which the coordinator is reachable. Hostname of universe rank 0 if not given",
    )
    coordinator_port: int = Field(
        0, description="tcp port of the coordinator, 0 for a random free port"
    )
    payload_retries: int = Field(
        0,
        ge=0,
        description="how many times a failed task is re-run on the failing rank before the failure becomes fatal. Only for payloads that fail before their first collective",
    )
    abort_on_failure: bool = Field(
        True,
        description="abort the whole universe when a rank fails, instead of letting the others block",
    )
    keep_records: bool = Field(
        False, description="keep the staging directory after the queue is closed"
    )

    @classmethod
    def from_env(cls, **overrides: Any) -> "Config":
        """Reads SUBWORLDS_* variables, eg SUBWORLDS_PAYLOAD_RETRIES=2. Explicit overrides win"""
        values: dict[str, Any] = {}
        for name in cls.model_fields:
            raw = os.getenv(f"{envvar_prefix}{name.upper()}")
            if raw is not None:
                values[name] = raw
        values.update(overrides)
        return cls(**values)


logging_config = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "default": {
            "class": "logging.StreamHandler",
            "formatter": "default",
            "stream": "ext://sys.stderr",
        },
    },
    "loggers": {
        "subworlds": {"level": "INFO"},
        "subworlds.tracing": {"level": "WARNING"},
    },
    "root": {"level": "WARNING", "handlers": ["default"]},
}
