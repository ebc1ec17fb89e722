"""Auction authority service: auction CRUD, gateway RPC and fault admin."""
