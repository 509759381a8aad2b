"""Providers app package.

Adapters over the external inventory providers (Amadeus for hotels,
Duffel for flights) behind one small interface: search offers, create an
order, cancel an order. Provider responses are stored verbatim; only the
order id is ever read out of them.
"""
