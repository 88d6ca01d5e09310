"""Pennyekart storefront and admin backend."""
