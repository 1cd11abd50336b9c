"""Crypto checkout: live price oracle and payment quoting."""
