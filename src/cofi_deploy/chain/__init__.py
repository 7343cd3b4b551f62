"""
Chain - Starknet interaction layer for cofi-deploy.

Provides calldata placeholders and encoding, compiled-artifact lookup,
deployer identity loading, and the gateway that declares, deploys and
invokes through a single account.

Uses starknet-py for hashing, signing and the JSON-RPC client.
"""
