"""Contracts package.

This package defines the bridge <-> engine message contract: the closed set of
operation kinds, their wire shape, and strict response validation. The bridge
and engine adapters may only share message types via `playground.contracts`.
"""
