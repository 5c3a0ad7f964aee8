"""
Gateways to the outside world: the on-chain Agent registry, the IPFS
content store and the on-disk model cache.
"""
