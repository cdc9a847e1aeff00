"""
External boundaries (NEAR RPC, price feed) and the pure event parser.
"""
