"""bitwarden-reader: sync status dashboard for Bitwarden secrets in Kubernetes."""

__version__ = "1.0.0"
