"""forge-provision — idempotent provisioning for the forge ROCm stack."""

__version__ = "0.1.0"
