"""
Collector services: reward computation, persistence, reconciliation and node RPC.
"""
