"""Password hashing, TOTP, token issuance and login throttling."""
