"""Authentication domain: account aggregate, contracts, errors and flows."""
