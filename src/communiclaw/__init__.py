"""Communiclaw API: giveaways, allowlists, presales and agent entry for web3 communities."""
