"""Payments app package.

Decides how much a booking charges through the card processor (full
price under the merchant model, margin only for guest-card Amadeus
hotels), talks to Stripe for intents and refunds and receives the Stripe
webhook.
"""
