"""Gasless token swaps through an ERC-4337 smart account."""

__version__ = "0.1.0"
