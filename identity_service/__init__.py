"""Identity service: registration, credential verification, JWT issuance and TOTP MFA."""

__version__ = "0.1.0"
