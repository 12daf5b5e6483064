"""End-to-end scenarios for the reply bridge.

Each scenario drives a full Bridge (forwarder, dedup gate, correlator,
dispatcher and sweeper) through a fake transport and a scripted webhook.
"""
