"""
Configuration artifact model — a rendered file waiting to be installed.
"""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, Field

from src.core.models.action import Action


class ArtifactKind(StrEnum):
    ENV = "env"                 # application environment file
    PROXY = "proxy"             # reverse-proxy site definition
    UNIT = "unit"               # process-supervision unit
    SCHEDULE = "schedule"       # scheduled-task entries


class ConfigArtifact(BaseModel):
    """A file produced by ConfigWriter.render().

    Attributes:
        name:          Short label used in logs.
        kind:          Selects the validator applied before install.
        path:          Final location on the host.
        content:       Full file content. May hold secrets, so it is
                       excluded from repr.
        mode:          Permission bits applied to the temp file before
                       it replaces the live one.
        owner, group:  Optional ownership (None leaves it as created).
        post_install:  Actions run once the file is in place (reload the
                       consuming service, enable a site, ...).
    """

    name: str
    kind: ArtifactKind
    path: Path
    content: str = Field(repr=False)
    mode: int = 0o644
    owner: str | None = None
    group: str | None = None
    post_install: list[Action] = Field(default_factory=list)
