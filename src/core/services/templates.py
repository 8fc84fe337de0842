"""
File templates for the configuration artifacts.

Placeholders are ``{key}`` tokens filled by ``render_template`` with
plain string replacement, so nginx's own ``$variables`` and braces need
no escaping.
"""

from __future__ import annotations

_FASTCGI_BLOCK = """\
    root {public_dir};

    add_header X-Frame-Options "SAMEORIGIN";
    add_header X-Content-Type-Options "nosniff";

    index index.php;
    charset utf-8;
{tls_lines}
    location / {
        try_files $uri $uri/ /index.php?$query_string;
    }

    location ~ ^/index\\.php(/|$) {
        fastcgi_pass unix:{fpm_socket};
        fastcgi_param SCRIPT_FILENAME $realpath_root$fastcgi_script_name;
        include fastcgi_params;
        fastcgi_hide_header X-Powered-By;
    }
"""

NGINX_HTTP = """\
# Managed by panel-provisioner
server {
    listen 80;
    listen [::]:80;
    server_name {domain};
""" + _FASTCGI_BLOCK + "}\n"

NGINX_HTTPS = """\
# Managed by panel-provisioner
server {
    listen 80;
    listen [::]:80;
    server_name {domain};
    return 301 https://$host$request_uri;
}

server {
    listen 443 ssl http2;
    listen [::]:443 ssl http2;
    server_name {domain};
""" + _FASTCGI_BLOCK + "}\n"

NGINX_TLS_LINES = """
    ssl_certificate {fullchain};
    ssl_certificate_key {privkey};
"""

# Main config used only to syntax-check one candidate site file.
NGINX_CHECK_WRAPPER = """\
events {}
http {
    include mime.types;
    include {candidate};
}
"""

QUEUE_WORKER_UNIT = """\
[Unit]
Description={display_name} Queue Worker
After=network.target

[Service]
User={user}
Group={group}
Restart=always
ExecStart={php_binary} {install_dir}/artisan queue:work
StartLimitInterval=180
StartLimitBurst=30
RestartSec=5s
WorkingDirectory={install_dir}

[Install]
WantedBy=multi-user.target
"""

CRON_HEADER = """\
# Managed by panel-provisioner. Each entry follows its "# task:" line.
SHELL=/bin/sh
PATH=/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin
"""

CRON_TASK_MARKER = "# task: "


def render_template(template: str, values: dict[str, object]) -> str:
    """Substitute ``{key}`` placeholders with ``values``."""
    result = template
    for key, value in values.items():
        result = result.replace("{" + key + "}", str(value))
    return result
