"""Panel provisioner — installs a PHP web application stack onto a bare host."""

__version__ = "0.1.0"
