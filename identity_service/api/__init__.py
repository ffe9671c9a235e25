"""HTTP transport for the authentication flows."""
