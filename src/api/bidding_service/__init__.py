"""Bidding service: bid placement validated against the auction authority."""
