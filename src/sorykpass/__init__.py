"""SorykPass checkout service: seat holds, Webpay checkout and ticket issuance."""

__version__ = "1.0.0"
