import secrets


def generate_license_key() -> str:
    """64-char hex key handed to the WordPress plugin."""
    return secrets.token_hex(32)
