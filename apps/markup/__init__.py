"""Markup app package.

Holds the markup rate table (percentage markup plus flat service fee per
product type and currency) and the pricing pipeline that turns a
provider's base price into the customer-facing total.
"""
