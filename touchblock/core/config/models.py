from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_ALTERNATE_SU_PATHS: List[str] = [
    "su",
    "/system/bin/su",
    "/system/xbin/su",
    "/sbin/su",
    "/data/local/xbin/su",
    "/data/local/bin/su",
    "/system/sd/xbin/su",
    "/system/bin/failsafe/su",
    "/data/local/su",
    "/su/bin/su",
]

DEFAULT_ROOT_ARTIFACT_PATHS: List[str] = [
    "/system/app/Superuser.apk",
    "/sbin/su",
    "/system/bin/su",
    "/system/xbin/su",
    "/data/local/xbin/su",
    "/data/local/bin/su",
    "/system/sd/xbin/su",
    "/system/bin/failsafe/su",
    "/data/local/su",
    "/su/bin/su",
    "/system/etc/init.d/99SuperSUDaemon",
    "/dev/com.koushikdutta.superuser.daemon/",
    "/system/app/SuperSU.apk",
]

DEFAULT_ROOT_PACKAGES: List[str] = [
    # superuser managers
    "com.noshufou.android.su",
    "com.noshufou.android.su.elite",
    "eu.chainfire.supersu",
    "com.koushikdutta.superuser",
    "com.thirdparty.superuser",
    "com.yellowes.su",
    "com.topjohnwu.magisk",
    "io.github.huskydg.magisk",
    "com.kingroot.kinguser",
    "com.kingo.root",
    "com.smedialink.oneclickroot",
    "com.zhiqupk.root.global",
    "com.alephzain.framaroot",
    # hook installers and root tooling
    "com.koushikdutta.rommanager",
    "com.koushikdutta.rommanager.license",
    "com.dimonvideo.luckypatcher",
    "com.chelpus.lackypatch",
    "com.ramdroid.appquarantine",
    "com.ramdroid.appquarantinepro",
    "com.devadvance.rootcloak",
    "com.devadvance.rootcloakplus",
    "de.robv.android.xposed.installer",
    "com.saurik.substrate",
    "com.zachspong.temprootremovejb",
    "com.amphoras.hidemyroot",
    "com.amphoras.hidemyrootadfree",
    "com.formyhm.hiderootPremium",
    "com.formyhm.hideroot",
]


class ProbeConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    su_binary: str = "su"
    sentinel: str = "root_test_success"
    alternate_su_paths: List[str] = Field(default_factory=lambda: list(DEFAULT_ALTERNATE_SU_PATHS))
    skip_live_when_unlikely: bool = True
    root_artifact_paths: List[str] = Field(default_factory=lambda: list(DEFAULT_ROOT_ARTIFACT_PATHS))
    root_packages: List[str] = Field(default_factory=lambda: list(DEFAULT_ROOT_PACKAGES))

    @field_validator("sentinel")
    @classmethod
    def _plain_sentinel(cls, v: str) -> str:
        v = str(v or "").strip()
        if not v or not v.replace("_", "").isalnum():
            raise ValueError("sentinel must be a non-empty [A-Za-z0-9_] token")
        return v


class TimeoutsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    root_request_ms: int = Field(default=10_000, ge=100, le=120_000)
    root_check_ms: int = Field(default=3_000, ge=100, le=60_000)
    accessibility_check_ms: int = Field(default=3_000, ge=100, le=60_000)
    quick_operation_ms: int = Field(default=2_000, ge=50, le=60_000)
    root_command_ms: int = Field(default=15_000, ge=1_000, le=300_000)
    retry_attempts: int = Field(default=3, ge=1, le=10)
    retry_delay_ms: int = Field(default=1_000, ge=0, le=60_000)


class ScriptConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    input_class_dir: str = "/sys/class/input"
    input_dev_dir: str = "/dev/input"
    device_glob: str = "event*"
    touchscreen_marker: str = "touchscreen"
    helper_process: str = "getevent"
    blocked_mode: str = "000"
    default_mode: str = "664"

    @field_validator("blocked_mode", "default_mode")
    @classmethod
    def _octal_mode(cls, v: str) -> str:
        v = str(v or "").strip()
        if len(v) not in {3, 4} or any(c not in "01234567" for c in v):
            raise ValueError("mode must be 3-4 octal digits")
        return v


class HookConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    bridge_symbol: str = "de.robv.android.xposed:XposedBridge"


class AccessibilityConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    service_component: str = "com.example.touchblock/com.example.touchblock.KeyListenerService"
    settings_action: str = "android.settings.ACCESSIBILITY_SETTINGS"


class StoreConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    preferences_file: str = "data/preferences.json"
    max_backups: int = Field(default=5, ge=0, le=100)


class ExecutorConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    max_workers: int = Field(default=8, ge=2, le=64)


class EventsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    enabled: bool = True
    max_queue_size: int = Field(default=200, ge=10, le=100_000)
    shutdown_grace_seconds: float = Field(default=2.0, ge=0.1, le=60.0)


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    log_dir: str = "logs"
    level: str = "INFO"
    max_bytes: int = Field(default=1_000_000, ge=10_000)
    backup_count: int = Field(default=5, ge=0, le=50)


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    config_version: int = Field(default=1, ge=1)
    probe: ProbeConfig = Field(default_factory=ProbeConfig)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)
    scripts: ScriptConfig = Field(default_factory=ScriptConfig)
    hook: HookConfig = Field(default_factory=HookConfig)
    accessibility: AccessibilityConfig = Field(default_factory=AccessibilityConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    events: EventsConfig = Field(default_factory=EventsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
