"""
Column types shared by the engine models.
"""

from sqlalchemy import DECIMAL

# Payouts, statistics totals and measured event amounts.
# 18 digits, 8 of them fractional; matches the config service precision.
MoneyType = DECIMAL(18, 8)
