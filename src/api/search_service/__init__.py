"""Search service: read API over the auction projection."""
