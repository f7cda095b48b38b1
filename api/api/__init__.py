"""HTTP control plane for the payment-times compliance core."""

__version__ = "0.4.0"
