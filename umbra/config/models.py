from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field


class VCSConfig(BaseModel):
    binary: str = "hg"
    timeout: int | None = Field(default=None, gt=0)


class WatcherConfig(BaseModel):
    binary: str = "watchman"
    timeout: int = Field(default=30, gt=0)
    follow_debounce_seconds: float = Field(default=2.0, gt=0)


class SyncConfig(BaseModel):
    copy_concurrency: int = Field(default=8, gt=0)
    transplant_strategy: Literal["bulk", "per-commit"] = "bulk"
    strip_source: bool = True
    fallback_base_file: str = ".arcconfig"
    default_files: list[str] = Field(default_factory=lambda: [".hgignore", ".arcconfig"])
    remove_shadow_on_unbreak: bool = True


class LockConfig(BaseModel):
    filename: str = "lockfile"
    wait_seconds: float = Field(default=60.0, ge=0)


class UmbraConfig(BaseModel):
    shadow_dir: str = "~/.umbra"
    vcs: VCSConfig = Field(default_factory=VCSConfig)
    watcher: WatcherConfig = Field(default_factory=WatcherConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    lock: LockConfig = Field(default_factory=LockConfig)
    log_level: Literal["debug", "info", "warn", "error"] = "info"
    log_format: Literal["text", "json"] = "text"

    @property
    def shadow_path(self) -> Path:
        return Path(self.shadow_dir).expanduser()

    @property
    def lock_path(self) -> Path:
        return self.shadow_path / self.lock.filename
