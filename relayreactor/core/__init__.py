"""
Relay Reactor core — data model, signing, canonical encoding, errors.
"""
