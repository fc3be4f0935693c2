"""Telephony audio helpers.

Twilio Media Streams carry 8kHz G.711 mu-law. Everything in this package
converts between that wire format and what the speech engines consume.
"""
