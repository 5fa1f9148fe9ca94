"""SMS inbox: provider webhook ingestion and an OTP-highlighting dashboard."""

__version__ = "1.0.0"
