"""HTTP query surface for the trust pipeline."""
