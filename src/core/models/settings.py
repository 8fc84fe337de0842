"""
ProvisionSettings — every tunable of the provisioner.

Defaults install Paymenter on a Debian-family host. A YAML settings file
(see ``src.core.config.loader``) can override any field.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


_DEFAULT_PHP_EXTENSIONS = [
    "common", "cli", "gd", "mysql", "mbstring", "bcmath",
    "xml", "fpm", "curl", "zip", "intl", "redis",
]

_DEFAULT_SUPPORTED_OS = {
    "ubuntu": ["20.04", "22.04", "24.04"],
    "debian": ["11", "12"],
}


class ProvisionSettings(BaseModel):
    """Validated provisioner settings."""

    model_config = ConfigDict(extra="forbid")

    # ── Application ──────────────────────────────────────────────
    app_name: str = "paymenter"
    display_name: str = "Paymenter"
    install_dir: Path = Path("/var/www/paymenter")
    release_url: str = (
        "https://github.com/paymenter/paymenter/releases/latest/download/paymenter.tar.gz"
    )
    seed_classes: list[str] = Field(default_factory=lambda: ["CustomPropertySeeder"])

    # ── Runtime stack ────────────────────────────────────────────
    php_version: str = "8.3"
    php_extensions: list[str] = Field(default_factory=lambda: list(_DEFAULT_PHP_EXTENSIONS))
    extra_packages: list[str] = Field(
        default_factory=lambda: ["mariadb-server", "nginx", "redis-server",
                                 "tar", "unzip", "git", "curl", "lsof"]
    )
    mariadb_version: str = "10.11"
    mariadb_repo_script: str = "https://downloads.mariadb.com/MariaDB/mariadb_repo_setup"
    web_user: str = "www-data"
    web_group: str = "www-data"
    apply_ownership: bool = True

    # ── Database / cache ─────────────────────────────────────────
    db_name: str = "paymenter"
    db_user: str = "paymenter"
    db_host: str = "127.0.0.1"
    db_port: int = 3306
    redis_host: str = "127.0.0.1"
    redis_port: int = 6379
    cache_store: str = "redis"
    queue_connection: str = "redis"

    # ── Host layout ──────────────────────────────────────────────
    nginx_dir: Path = Path("/etc/nginx")
    nginx_sites_available: Path = Path("/etc/nginx/sites-available")
    nginx_sites_enabled: Path = Path("/etc/nginx/sites-enabled")
    systemd_dir: Path = Path("/etc/systemd/system")
    cron_dir: Path = Path("/etc/cron.d")
    letsencrypt_live_dir: Path = Path("/etc/letsencrypt/live")
    apt_sources_dir: Path = Path("/etc/apt/sources.list.d")
    os_release_path: Path = Path("/etc/os-release")

    # ── Provisioner bookkeeping ──────────────────────────────────
    log_dir: Path = Path("/var/log/paymenter-provisioner")
    state_dir: Path = Path("/var/lib/paymenter-provisioner")
    lock_path: Path = Path("/run/paymenter-provisioner.lock")
    upgrade_log: Path = Path("/var/log/paymenter-upgrade.log")

    # ── Checks ───────────────────────────────────────────────────
    min_free_mb: int = 2000
    supported_os: dict[str, list[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in _DEFAULT_SUPPORTED_OS.items()}
    )

    # ── Scheduled tasks ──────────────────────────────────────────
    cron_user: str = "root"
    scheduler_schedule: str = "* * * * *"
    auto_update_schedule: str = "15 3 * * *"
    renewal_schedule: str = "0 23 * * *"

    # ── TLS ──────────────────────────────────────────────────────
    certbot_email: str | None = None

    @property
    def unit_name(self) -> str:
        return f"{self.app_name}.service"

    @property
    def site_file(self) -> Path:
        return self.nginx_sites_available / f"{self.app_name}.conf"

    @property
    def site_link(self) -> Path:
        return self.nginx_sites_enabled / f"{self.app_name}.conf"

    @property
    def env_file(self) -> Path:
        return self.install_dir / ".env"

    @property
    def cron_file(self) -> Path:
        return self.cron_dir / self.app_name

    @property
    def php_packages(self) -> list[str]:
        base = f"php{self.php_version}"
        return [base] + [f"{base}-{ext}" for ext in self.php_extensions]
