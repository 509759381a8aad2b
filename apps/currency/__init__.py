"""Currency app package.

Converts prices between the supported currencies using cached USD based
exchange rates and adds the conversion buffer that protects a quoted
price against rate drift before payment.
"""
