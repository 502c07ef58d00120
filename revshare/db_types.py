"""Database-agnostic type definitions for SQLAlchemy models.

This module provides type definitions that work with both SQLite and PostgreSQL.
"""
from sqlalchemy import JSON, BigInteger, Numeric, Uuid

# Use JSON instead of JSONB for cross-database compatibility
# JSONB is PostgreSQL-specific, JSON works with both SQLite and PostgreSQL
JSONType = JSON

# Native UUID on PostgreSQL, CHAR(32) elsewhere
UUIDType = Uuid

# Money is stored as whole minor currency units (Rupiah), never floats
MoneyType = BigInteger

# Percentages are stored exactly with two decimal places (e.g. 12.50)
PercentageType = Numeric(5, 2, asdecimal=True)
