"""Dirty-data counter adapters.

The balance-dirty path only needs an approximate and an exact reading. This
package keeps that behind a small interface so the in-memory sharded counter
can later be replaced by one backed by the real page cache statistics.
"""
